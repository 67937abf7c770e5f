# FreeHand: Core Module - Shared Utilities
#
# Core module provides shared functionality across all FreeHand modules:
# - Audit logging
# - Settings
# - Typed event channels
# - The application context passed to every component

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
)
from .config import Settings, SettingsStore
from .context import AppContext, AppEvents
from .events import EventChannel, Subscription
from .exceptions import (
    CallTimeout,
    ConfigurationError,
    ConnectionFailure,
    DiscoveryFailure,
    EvaluationError,
    FreeHandError,
    ProtocolError,
    RemoteCallError,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    # Settings
    "Settings",
    "SettingsStore",
    # Context / events
    "AppContext",
    "AppEvents",
    "EventChannel",
    "Subscription",
    # Errors
    "FreeHandError",
    "DiscoveryFailure",
    "ConnectionFailure",
    "CallTimeout",
    "ProtocolError",
    "RemoteCallError",
    "EvaluationError",
    "ConfigurationError",
]
