from pathlib import Path

PWSESSION_DIR = Path(__file__).parent
REPO_ROOT_DIR = PWSESSION_DIR.parent

DEFAULT_SESSION_ID = "default"

# Names whose bindings inside a fragment are mirrored into the durable namespace.
TRACKED_NAMES: frozenset[str] = frozenset({"browser", "context", "page", "resource_pool"})
# Reserved environment name the rewriter publishes through.
DURABLE_NAMESPACE_NAME = "__durable__"
# Holds a trailing expression's value while tracked names it binds are published.
COMPLETION_VALUE_NAME = "__completion__"

FRAGMENT_FILENAME = "<fragment>"
SESSION_INIT_FRAGMENT = "# session initialized"

STORAGE_STATE_SUFFIX = "-state.json"
ORPHAN_TERMINATE_TIMEOUT = 3  # seconds
SERVER_SHUTDOWN_DELAY = 0.1  # seconds
