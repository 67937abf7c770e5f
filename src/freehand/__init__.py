# FreeHand: Package Root
#
# Hands-free agent for the Antigravity IDE: finds the running language
# server, attaches to the IDE over the Chrome DevTools Protocol and
# clicks the accept/run prompts the agent would otherwise wait on.

__version__ = "0.1.0"

from .core.context import AppContext
from .supervisor import AppStatus, FreeHandApp

__all__ = [
    "__version__",
    "AppContext",
    "AppStatus",
    "FreeHandApp",
]
