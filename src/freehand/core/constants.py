# FreeHand: Core - Shared Constants
#
# Patterns, platform process names, and protocol paths shared across
# discovery, the control channel, and the automation loop.

from typing import Dict, Tuple

APP_NAME = "FreeHand"
APP_ID = "freehand"

# ── Discovery ────────────────────────────────────────────────────────

PROCESS_NAMES: Dict[str, str] = {
    "windows": "language_server_windows_x64.exe",
    "darwin_arm": "language_server_macos_arm",
    "darwin_x64": "language_server_macos",
    "linux": "language_server_linux",
}

PORT_FLAG = "--extension_server_port"
TOKEN_FLAG = "--csrf_token"
MARKER_FLAG = "--app_data_dir"
MARKER_VALUE = "antigravity"

# Listening ports outside (MIN_PORT_EXCLUSIVE, MAX_PORT] are never probed
MIN_PORT_EXCLUSIVE = 1024
MAX_PORT = 65535

PROBE_PATH = "/exa.language_server_pb.LanguageServerService/GetUnleashData"
USER_STATUS_PATH = "/exa.language_server_pb.LanguageServerService/GetUserStatus"
TOKEN_HEADER = "X-Codeium-Csrf-Token"
PROTOCOL_VERSION_HEADER = "Connect-Protocol-Version"
PROTOCOL_VERSION = "1"

LOCALHOST = "127.0.0.1"
PROBE_TIMEOUT = 5.0  # seconds
SCAN_BACKOFF = 1.0  # seconds between failed discovery rounds
DEFAULT_SCAN_ATTEMPTS = 3

# ── Control channel ──────────────────────────────────────────────────

CDP_DEFAULT_PORT = 9222
CDP_HANDSHAKE_METHOD = "Runtime.enable"
CDP_EVALUATE_METHOD = "Runtime.evaluate"
DEFAULT_CALL_TIMEOUT = 10.0  # seconds

# ── Automation ───────────────────────────────────────────────────────

DEFAULT_POLL_INTERVAL = 1.0  # seconds
MAX_BUTTON_TEXT_LENGTH = 50

ACCEPT_PATTERNS: Tuple[str, ...] = (
    "accept",
    "accept all",
    "run",
    "run command",
    "apply",
    "execute",
    "retry",
    "try again",
    "resume",
    "confirm",
    "allow once",
    "allow",
)

REJECT_PATTERNS: Tuple[str, ...] = (
    "skip",
    "reject",
    "cancel",
    "discard",
    "deny",
    "close",
    "refine",
    "other",
)

# Button wording that implies a command will be executed
COMMAND_ACTION_WORDS: Tuple[str, ...] = ("run", "execute")

DEFAULT_BLOCKLIST: Tuple[str, ...] = (
    "rm -rf /",
    "rm -rf ~",
    "rm -rf *",
    "format c:",
    "del /f /s /q",
    "rmdir /s /q",
    ":(){:|:&};:",
    "dd if=",
    "mkfs.",
    "> /dev/sda",
    "chmod -R 777 /",
)

# Focus inside any of these widgets counts as active typing
TYPING_WIDGET_CLASSES: Tuple[str, ...] = (
    "monaco-editor",
    "inputarea",
    "prosemirror",
    "chat-input",
    "message-input",
    "contenteditable",
)

EDITABLE_TAGS: Tuple[str, ...] = ("input", "textarea")

SKIP_USER_TYPING = "user typing"
SKIP_NO_MATCH = "no matching buttons"
SKIP_BLOCKED = "blocked command"
SKIP_DISCONNECTED = "disconnected"

# ── Quota ────────────────────────────────────────────────────────────

DEFAULT_WARNING_THRESHOLD = 30  # percent
CRITICAL_THRESHOLD = 10  # percent
DEFAULT_QUOTA_REFRESH_INTERVAL = 120  # seconds
DEFAULT_RESET_HOURS = 24
QUOTA_TIMEOUT = 10.0  # seconds
QUOTA_CLIENT_METADATA = {
    "ideName": "antigravity",
    "extensionName": "antigravity",
    "locale": "en",
}

# ── Supervisor ───────────────────────────────────────────────────────

DEFAULT_REDISCOVERY_DELAY = 10.0  # seconds
WAKE_CHECK_INTERVAL = 60.0  # seconds
