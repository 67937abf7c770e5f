"""
FreeHand Exception Classes
"""


class FreeHandError(Exception):
    """Base exception for FreeHand operations"""
    pass


class DiscoveryFailure(FreeHandError):
    """Raised when no verified target process is found after all attempts"""
    pass


class ConnectionFailure(FreeHandError):
    """Raised when the transport is refused, the handshake fails, or the channel dies"""
    pass


class CallTimeout(FreeHandError):
    """Raised when a single control-channel call receives no response in time"""

    def __init__(self, method: str, call_id: int, timeout: float):
        super().__init__(f"{method} (id={call_id}) timed out after {timeout:.1f}s")
        self.method = method
        self.call_id = call_id
        self.timeout = timeout


class ProtocolError(FreeHandError):
    """Raised when a response cannot be decoded"""
    pass


class RemoteCallError(FreeHandError):
    """Raised when the remote side answers a call with an error object"""
    pass


class EvaluationError(RemoteCallError):
    """Raised when the remote decision routine throws or returns garbage"""
    pass


class ConfigurationError(FreeHandError):
    """Raised when a setting value is invalid"""
    pass
