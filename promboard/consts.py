import os

from promboard._private.constants import env_float, env_integer, env_str

# Base URL of the monitoring gateway that serves range queries.
MONITORING_ENDPOINT_ENV_VAR = "PROMBOARD_MONITORING_ENDPOINT"
DEFAULT_MONITORING_ENDPOINT = "http://localhost:9090"
MONITORING_ENDPOINT = env_str(MONITORING_ENDPOINT_ENV_VAR, DEFAULT_MONITORING_ENDPOINT)

RANGE_QUERY_PATH = env_str("PROMBOARD_RANGE_QUERY_PATH", "/api/metrics/range")
DEFAULT_STEP = env_str("PROMBOARD_DEFAULT_STEP", "15s")
DEFAULT_RANGE_MINUTES = env_integer("PROMBOARD_DEFAULT_RANGE_MINUTES", 30)
HTTP_TIMEOUT_SECONDS = env_integer("PROMBOARD_HTTP_TIMEOUT_SECONDS", 30)

FETCH_ERROR_MESSAGE = "Failed to fetch metrics."

# Instance id used by the observability node itself. Queries shown for it are
# never scoped to an instance.
NO_SPECIFIC_INSTANCE = "observability-node"
INSTANCE_LABEL = "instance"

# Persistence
SAVE_THROTTLE_SECONDS = env_float("PROMBOARD_SAVE_THROTTLE_SECONDS", 1.0)
STATE_DIR = os.path.expanduser(env_str("PROMBOARD_STATE_DIR", "~/.promboard"))
DASHBOARD_STATE_KEY = "dashboardState"

# Query defaults
DEFAULT_RESOLUTION = 2
MIN_RESOLUTION = 0
MAX_RESOLUTION = 3
DEFAULT_PANEL_TITLE = "New Panel"

# Logging
LOGGING_LEVEL = env_str("PROMBOARD_LOGGING_LEVEL", "INFO")
LOGGING_FORMAT = "%(asctime)s\t%(levelname)s %(filename)s:%(lineno)s -- %(message)s"
