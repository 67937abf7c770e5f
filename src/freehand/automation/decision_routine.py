# FreeHand: Automation - Decision Routine
#
# The logic evaluated inside the page each poll cycle. A DecisionRoutine
# is a plain value: its pattern lists are explicit typed fields, and it is
# serialized to a JS expression exactly once (the parameters go in as one
# JSON literal, never spliced into code). decide() runs the same
# precedence chain in Python over a PageSnapshot, so the ordering can be
# tested without a browser.
#
# Precedence, per cycle:
#   1. typing guard            -> whole cycle skipped
#   2. button / role=button elements only
#   3. normalized text, 1..50 chars
#   4. reject pattern          -> excluded, even if an accept pattern matches
#   5. accept pattern required
#   6. rendered and interactive
#   7. safety gate (run/execute wording + blocked preview) -> this element only
#   8. click the survivors

import json
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core import constants
from .input_guard import FocusSnapshot, is_user_typing
from .safety_filter import is_command_blocked

# Per-element exclusion reasons reported by classify()
EXCLUDED_NOT_BUTTON = "not a button"
EXCLUDED_TEXT = "empty or overlong text"
EXCLUDED_REJECTED = "reject pattern"
EXCLUDED_NOT_ACCEPTED = "no accept pattern"
EXCLUDED_HIDDEN = "hidden or disabled"
EXCLUDED_BLOCKED = "blocked command"


@dataclass(frozen=True)
class ElementSnapshot:
    """A candidate element as the page renders it.

    ``preview_text`` is the text of the command-preview block next to the
    element (``pre``/``code`` in the nearest enclosing block), if any.
    """

    text: str
    tag: str = "button"
    role: Optional[str] = None
    width: float = 80.0
    display: str = "block"
    visibility: str = "visible"
    pointer_events: str = "auto"
    disabled: bool = False
    aria_disabled: bool = False
    preview_text: Optional[str] = None

    @property
    def is_clickable_looking(self) -> bool:
        return self.tag.lower() == "button" or (self.role or "").lower() == "button"

    @property
    def is_interactive(self) -> bool:
        return (
            self.width > 0
            and self.display != "none"
            and self.visibility != "hidden"
            and self.pointer_events != "none"
            and not self.disabled
            and not self.aria_disabled
        )


@dataclass(frozen=True)
class PageSnapshot:
    elements: Tuple[ElementSnapshot, ...] = ()
    focus: Optional[FocusSnapshot] = None


@dataclass(frozen=True)
class Decision:
    clicked: Tuple[int, ...] = ()  # indices into PageSnapshot.elements
    skipped: Optional[str] = None
    blocked: Tuple[int, ...] = ()

    @property
    def clicked_count(self) -> int:
        return len(self.clicked)


def normalize_text(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _normalize_patterns(patterns: Iterable[str]) -> Tuple[str, ...]:
    return tuple(p.strip().lower() for p in patterns if p and p.strip())


@dataclass(frozen=True)
class DecisionRoutine:
    """Parameters of one poll cycle's decision routine.

    Build a fresh one per cycle from a settings snapshot; never mutate.
    """

    accept_patterns: Tuple[str, ...] = constants.ACCEPT_PATTERNS
    reject_patterns: Tuple[str, ...] = constants.REJECT_PATTERNS
    blocklist: Tuple[str, ...] = constants.DEFAULT_BLOCKLIST
    max_text_length: int = constants.MAX_BUTTON_TEXT_LENGTH
    action_words: Tuple[str, ...] = constants.COMMAND_ACTION_WORDS
    typing_classes: Tuple[str, ...] = constants.TYPING_WIDGET_CLASSES

    def __post_init__(self):
        # Normalize once; tuples keep the routine hashable and immutable
        object.__setattr__(self, "accept_patterns", _normalize_patterns(self.accept_patterns))
        object.__setattr__(self, "reject_patterns", _normalize_patterns(self.reject_patterns))
        object.__setattr__(self, "blocklist", tuple(self.blocklist))
        object.__setattr__(self, "action_words", _normalize_patterns(self.action_words))
        object.__setattr__(self, "typing_classes", _normalize_patterns(self.typing_classes))

    # ── Python evaluation ────────────────────────────────────────────

    def classify(self, element: ElementSnapshot) -> Optional[str]:
        """Return why ``element`` is excluded, or None if it should be clicked."""
        if not element.is_clickable_looking:
            return EXCLUDED_NOT_BUTTON

        text = normalize_text(element.text)
        if not text or len(text) > self.max_text_length:
            return EXCLUDED_TEXT
        if any(p in text for p in self.reject_patterns):
            return EXCLUDED_REJECTED
        if not any(p in text for p in self.accept_patterns):
            return EXCLUDED_NOT_ACCEPTED
        if not element.is_interactive:
            return EXCLUDED_HIDDEN
        if self.is_command_action(text) and element.preview_text is not None:
            if is_command_blocked(element.preview_text, self.blocklist):
                return EXCLUDED_BLOCKED
        return None

    def is_command_action(self, text: str) -> bool:
        return any(w in text for w in self.action_words)

    def decide(self, page: PageSnapshot) -> Decision:
        if is_user_typing(page.focus, self.typing_classes):
            return Decision(skipped=constants.SKIP_USER_TYPING)

        clicked: List[int] = []
        blocked: List[int] = []
        for index, element in enumerate(page.elements):
            reason = self.classify(element)
            if reason is None:
                clicked.append(index)
            elif reason == EXCLUDED_BLOCKED:
                blocked.append(index)

        skipped = None
        if not clicked:
            skipped = constants.SKIP_BLOCKED if blocked else constants.SKIP_NO_MATCH
        return Decision(clicked=tuple(clicked), skipped=skipped, blocked=tuple(blocked))

    # ── Remote evaluation ────────────────────────────────────────────

    def params(self) -> Dict[str, Any]:
        return {
            "accept": list(self.accept_patterns),
            "reject": list(self.reject_patterns),
            "blocklist": list(self.blocklist),
            "maxTextLength": self.max_text_length,
            "actionWords": list(self.action_words),
            "typingClasses": list(self.typing_classes),
            "editableTags": list(constants.EDITABLE_TAGS),
            "skipTyping": constants.SKIP_USER_TYPING,
            "skipNoMatch": constants.SKIP_NO_MATCH,
            "skipBlocked": constants.SKIP_BLOCKED,
        }

    @cached_property
    def expression(self) -> str:
        """The JS expression for Runtime.evaluate, serialized once."""
        return _SCRIPT_TEMPLATE.replace("__PARAMS__", json.dumps(self.params()))

    def to_evaluate_params(self) -> Dict[str, Any]:
        return {
            "expression": self.expression,
            "returnByValue": True,
            "awaitPromise": False,
        }


_SCRIPT_TEMPLATE = r"""
(function (P) {
    function lower(s) { return (s || '').toLowerCase(); }

    function containsAny(text, patterns) {
        for (var i = 0; i < patterns.length; i++) {
            if (text.indexOf(patterns[i]) !== -1) return true;
        }
        return false;
    }

    function isUserTyping() {
        var el = document.activeElement;
        if (!el || el === document.body) return false;
        if (P.editableTags.indexOf(lower(el.tagName)) !== -1) return true;
        if (el.isContentEditable) return true;
        for (var node = el; node && node.nodeType === 1; node = node.parentElement) {
            var cls = typeof node.className === 'string' ? node.className : node.getAttribute('class');
            if (containsAny(lower(cls), P.typingClasses)) return true;
        }
        return false;
    }

    function compileBlock(raw) {
        if (!raw || !raw.trim()) return null;
        var last = raw.lastIndexOf('/');
        if (raw.charAt(0) === '/' && last > 0) {
            var inner = raw.substring(1, last);
            var flags = raw.substring(last + 1) || 'i';
            try {
                return { regex: new RegExp(inner, flags.replace(/[gy]/g, '')) };
            } catch (e) {
                return { literal: inner.toLowerCase() };
            }
        }
        return { literal: raw.trim().toLowerCase() };
    }

    var BLOCK = [];
    for (var b = 0; b < P.blocklist.length; b++) {
        var compiled = compileBlock(P.blocklist[b]);
        if (compiled) BLOCK.push(compiled);
    }

    function isCommandBlocked(command) {
        if (!command) return false;
        var lowered = command.toLowerCase();
        for (var i = 0; i < BLOCK.length; i++) {
            var p = BLOCK[i];
            if (p.regex ? p.regex.test(command) : lowered.indexOf(p.literal) !== -1) return true;
        }
        return false;
    }

    function isInteractive(el) {
        var style = window.getComputedStyle(el);
        var rect = el.getBoundingClientRect();
        if (rect.width === 0) return false;
        if (style.display === 'none' || style.visibility === 'hidden') return false;
        if (style.pointerEvents === 'none') return false;
        if (el.disabled || el.getAttribute('aria-disabled') === 'true') return false;
        return true;
    }

    function previewText(el) {
        var block = el.closest('div');
        var pre = block ? block.querySelector('pre, code') : null;
        return pre ? pre.textContent : null;
    }

    if (isUserTyping()) {
        return { clicked: 0, skipped: P.skipTyping, blocked: 0 };
    }

    var targets = [];
    var blocked = 0;
    var buttons = document.querySelectorAll('button, [role="button"]');
    for (var n = 0; n < buttons.length; n++) {
        var btn = buttons[n];
        var text = lower((btn.textContent || '').trim());
        if (text.length === 0 || text.length > P.maxTextLength) continue;
        if (containsAny(text, P.reject)) continue;
        if (!containsAny(text, P.accept)) continue;
        if (!isInteractive(btn)) continue;
        if (containsAny(text, P.actionWords)) {
            var preview = previewText(btn);
            if (preview !== null && isCommandBlocked(preview)) {
                blocked++;
                continue;
            }
        }
        targets.push(btn);
    }

    for (var t = 0; t < targets.length; t++) {
        targets[t].click();
    }

    var skipped = null;
    if (targets.length === 0) skipped = blocked ? P.skipBlocked : P.skipNoMatch;
    return { clicked: targets.length, skipped: skipped, blocked: blocked };
})(__PARAMS__)
"""
