# FreeHand: Automation Module
#
# The poll loop and everything it decides with: the decision routine
# (typing guard, accept/reject patterns, interactivity) and the safety
# filter that keeps blocklisted commands from being auto-run.

from .auto_clicker import AutomationLoop, build_routine
from .decision_routine import (
    Decision,
    DecisionRoutine,
    ElementSnapshot,
    PageSnapshot,
    normalize_text,
)
from .input_guard import FocusSnapshot, is_typing_indicator, is_user_typing
from .models import PollResult
from .safety_filter import (
    BlockPattern,
    SafetyFilter,
    is_command_blocked,
    parse_pattern,
    resolve_blocklist,
)

__all__ = [
    "AutomationLoop",
    "build_routine",
    "Decision",
    "DecisionRoutine",
    "ElementSnapshot",
    "PageSnapshot",
    "normalize_text",
    "FocusSnapshot",
    "is_typing_indicator",
    "is_user_typing",
    "PollResult",
    "BlockPattern",
    "SafetyFilter",
    "is_command_blocked",
    "parse_pattern",
    "resolve_blocklist",
]
