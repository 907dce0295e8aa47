from servicemirror.core.actor import ActorCell, ActorContext, CellContext, ask
from servicemirror.core.behavior import Behavior, Behaviors, Signal
from servicemirror.core.mailbox import Mailbox
from servicemirror.core.ref import ActorId, ActorRef, LocalActorRef

__all__ = [
    "ActorCell",
    "ActorContext",
    "ActorId",
    "ActorRef",
    "Behavior",
    "Behaviors",
    "CellContext",
    "LocalActorRef",
    "Mailbox",
    "Signal",
    "ask",
]
