"""Repo Relay Conventions - IMMUTABLE

Canonical names, paths, and marker strings that every part of the relay
agrees on. These values are NOT configurable. Changing a marker string
here breaks loop detection against issues that were relayed before the
change, so treat them as a wire contract.

Things that CAN be configured (via relay.yaml / env, see config.py):
- authorized owner, shared token, GitHub credentials
- history ceiling, cleanup thresholds and cadence
- thread link storage location

Things that CANNOT be configured (defined HERE):
- directory structure within ~/.repo-relay/
- relay marker strings and the back-reference line format
- the recognized and target-exempt command sets
- bot-detection patterns
"""

# --- The Root ---
RELAY_HOME = "~/.repo-relay"

# --- Configuration ---
RELAY_CONFIG_FILENAME = "relay.yaml"
KEYS_FILENAME = "keys.yaml"
REPO_CONFIG_PATH = ".github/repo-relay.yml"  # within each origin repository

# --- Server ---
SERVER_DIR = "server"  # relative to RELAY_HOME
SERVER_LOG_FILE = "server.log"
SERVER_DEFAULT_PORT = 3000
THREAD_LINKS_FILENAME = "thread-links.json"  # relative to SERVER_DIR

# --- Defaults ---
DEFAULT_AUTHORIZED_USER = "joeeddy"
DEFAULT_BOT_LOGIN = "repo-relay[bot]"
DEFAULT_MAX_RELAY_HISTORY = 1000
DEFAULT_LINK_MAX_AGE_DAYS = 30
DEFAULT_HISTORY_MAX_AGE_DAYS = 7
DEFAULT_CLEANUP_INTERVAL_HOURS = 24
DEFAULT_VISIBILITY_TIMEOUT = 10.0  # seconds
HISTORY_EVICTION_FRACTION = 0.1
SIGNATURE_LENGTH = 32  # hex chars (128 bits)

# --- Relay markers ---
# Any body containing one of these was produced by the relay itself.
RELAY_COMMENT_MARKER = "<!-- relayed-by-reporelay"
RELAY_ORIGIN_PREFIX = "Originally relayed from"
RELAY_HEADING = "📡 **Relayed from"
REPLY_HEADING = "💬 **Reply from"
RELAY_MARKERS = (
    RELAY_COMMENT_MARKER,
    RELAY_ORIGIN_PREFIX,
    RELAY_HEADING,
    REPLY_HEADING,
)
ERROR_COMMENT_MARKER = "<!-- error-notification-by-reporelay -->"

# --- Commands ---
TARGET_EXEMPT_COMMANDS = frozenset({"status", "help", "list", "cleanup", "unlink"})
RESEARCH_COMMANDS = (
    "share_experiment",
    "cite_paper",
    "search_papers",
    "peer_review",
    "share_model",
    "share_dataset",
)
RECOGNIZED_COMMANDS = (
    "link",
    "unlink",
    "status",
    "help",
    "list",
    "cleanup",
    "deploy_strategy",
    "report_status",
    *RESEARCH_COMMANDS,
)

# --- Bot detection (case-insensitive) ---
BOT_SUFFIXES = ("bot", "[bot]")
BOT_PREFIXES = ("github-actions", "dependabot", "renovate")

# --- Webhook events ---
HANDLED_EVENTS = {
    "issues": {"opened"},
    "issue_comment": {"created"},
}
