# FreeHand: CDP Module
#
# Persistent, id-correlated request/response channel to the target's
# remote-debugging endpoint.

from .channel import CDPTarget, ControlChannel, select_page_target

__all__ = [
    "CDPTarget",
    "ControlChannel",
    "select_page_target",
]
