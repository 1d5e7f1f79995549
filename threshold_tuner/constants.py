# --- Batching limits ---
# Maximum number of KPIs a single ML analysis search may cover
KPIS_PER_SEARCH_THRESHOLD = 10

# A batch stops accepting new services once this many have contributed to it
MAX_SERVICES_PER_BATCH = 5

# Service ids per `_key` OR-filter when streaming services by id
SERVICE_KEYS_PER_QUERY = 10

# --- Analysis searches ---
TRAINING_SEARCH_TIMEOUT_SEC = 300
ANALYSIS_SEARCH_APP = "itsi"
ANALYSIS_SEARCH_USER = "nobody"

# Preferred ratio of parallel searches (per batch) to parallel batches
PREFERRED_SEARCH_TO_BATCH_RATIO = 0.5

SECONDS_PER_DAY = 86400

# Training windows (in days) with a precomputed "latest data" start time.
# Sharing one start time per window size maximizes search reuse across KPIs.
LATEST_DATA_WINDOW_DAYS = (7, 14, 30, 60)

# --- Analysis result markers ---
NO_DATA_KPI_ID = "None"
FLAG_INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
FLAG_CONSTANT_KPI = "CONSTANT_KPI"
CRON_NOT_SCHEDULED = "None"

# KPI ids with this prefix are shared (service health score) KPIs and are never reset
SHARED_KPI_PREFIX = "SHKPI"

# --- Insufficient data handling ---
INSUFFICIENT_DATA_SKIP = "skip"
INSUFFICIENT_DATA_RESET = "reset"
INSUFFICIENT_DATA_ACTIONS = (INSUFFICIENT_DATA_SKIP, INSUFFICIENT_DATA_RESET)

# --- Outlier detection applied alongside adaptive thresholds ---
OUTLIER_DETECTION_ALGO = "iqr"

# --- Object store ---
SERVICE_OBJECT_TYPE = "service"
ITOA_REST_INTERFACE = "itoa_interface"
SERVICE_PAGE_SIZE = 100
DEFAULT_REQUEST_TIMEOUT_SEC = 60

# --- Logging ---
# Attribute under which structured context is attached to log records
LOG_CONTEXT_KEY = "tuner"
