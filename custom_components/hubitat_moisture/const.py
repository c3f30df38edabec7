DOMAIN = "hubitat_moisture"

# Maker API contract
API_PATH = "/apps/api/242"
REQUEST_TIMEOUT = 30  # seconds

CONF_HEALTHY_THRESHOLD = "healthy_threshold"
CONF_CRITICAL_THRESHOLD = "critical_threshold"

DEFAULT_SCAN_INTERVAL = 1800  # seconds
MIN_SCAN_INTERVAL = 300  # smallest interval offered to users
DEFAULT_HEALTHY_THRESHOLD = 40.0
DEFAULT_CRITICAL_THRESHOLD = 20.0

# How long a "just watered" mark overrides the moisture reading
JUST_WATERED_WINDOW_SECONDS = 24 * 60 * 60

# Per-entry settings document under .storage
STORAGE_VERSION = 1
STORAGE_KEY = f"{DOMAIN}.settings"
SAVE_DELAY = 10  # seconds

# Services
SERVICE_REFRESH = "refresh"
SERVICE_MARK_WATERED = "mark_watered"
SERVICE_CLEAR_WATERED = "clear_watered"
SERVICE_SET_CUSTOM_NAME = "set_custom_name"
ATTR_SENSOR_ID = "sensor_id"
ATTR_NAME = "name"
