# FreeHand: Automation - Input Guard
#
# Decides whether the user is typing. Clicking a button while someone is
# mid-sentence in the chat box or editor steals focus and loses input,
# so the decision routine checks this before looking at any button.

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from ..core import constants


@dataclass(frozen=True)
class FocusSnapshot:
    """The focused element as seen from the page.

    ``classes`` holds the class attribute of the focused element followed
    by each ancestor's, innermost first.
    """

    tag: str = ""
    content_editable: bool = False
    classes: Tuple[str, ...] = ()


def is_typing_indicator(
    tag_name: str,
    class_name: str,
    typing_classes: Sequence[str] = constants.TYPING_WIDGET_CLASSES,
) -> bool:
    """Check a single element's tag and class attribute."""
    if (tag_name or "").lower() in constants.EDITABLE_TAGS:
        return True
    lower_class = (class_name or "").lower()
    return any(c in lower_class for c in typing_classes)


def is_user_typing(
    focus: Optional[FocusSnapshot],
    typing_classes: Sequence[str] = constants.TYPING_WIDGET_CLASSES,
) -> bool:
    """True when focus is in an editable field or inside a text widget."""
    if focus is None:
        return False
    if focus.content_editable:
        return True
    if is_typing_indicator(focus.tag, "", typing_classes):
        return True
    return any(is_typing_indicator("", cls, typing_classes) for cls in focus.classes)
