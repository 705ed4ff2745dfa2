"""Realtime dialog backend sessions.

One ``DialogSession`` wraps one backend connection for exactly one persona.
Vendor implementations are sibling classes of the same interface, selected
through a ``DialogSessionFactory`` at construction time.
"""

from src.palooza.backend.base import DialogSession, DialogSessionFactory, SessionListener
from src.palooza.backend.state import SessionMetrics, SessionState, TurnBuffer

__all__ = [
    "DialogSession",
    "DialogSessionFactory",
    "SessionListener",
    "SessionMetrics",
    "SessionState",
    "TurnBuffer",
]
