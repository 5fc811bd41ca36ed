"""
WebSocket Proxy Core Module

This module contains the tunnelling proxy server and the per-session
components: validator, upstream connector, pending buffer, frame relay and
lifecycle coordinator.
"""

from .tunnel_proxy import TokenTunnelProxy
from .session import Session, SessionState
from .lifecycle import SessionCoordinator, resolve_close
from .validator import Accepted, Rejected, validate_upgrade_request

__all__ = [
    'TokenTunnelProxy',
    'Session',
    'SessionState',
    'SessionCoordinator',
    'resolve_close',
    'Accepted',
    'Rejected',
    'validate_upgrade_request',
]
