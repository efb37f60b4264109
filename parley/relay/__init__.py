"""Relay core: events, routing and outbound actions.

- Events: the closed set of inbound event types a transport produces
- Dispatcher: classification and relay actions
- Outbound: action interface implemented by a transport
"""

from .dispatcher import RelayDispatcher
from .events import CommandEvent, ForwardOrigin, InboundEvent, MessageEvent, ReactionEvent, ReplyTarget, Sender
from .outbound import RelayOutbound, TextSpan

__all__ = [
    "RelayDispatcher",
    "CommandEvent",
    "ForwardOrigin",
    "InboundEvent",
    "MessageEvent",
    "ReactionEvent",
    "ReplyTarget",
    "Sender",
    "RelayOutbound",
    "TextSpan",
]
