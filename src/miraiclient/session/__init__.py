"""
session/ — Session state, capability negotiation and the lifecycle manager.

SessionManager lives in miraiclient.session.manager and is imported from
there; it depends on the gateway and dispatch packages.
"""

from miraiclient.session.capabilities import Capability, CapabilitySet, ServerVersion
from miraiclient.session.state import CancellationScope, Session, SessionSlot, SessionState

__all__ = [
    "CancellationScope",
    "Capability",
    "CapabilitySet",
    "ServerVersion",
    "Session",
    "SessionSlot",
    "SessionState",
]
