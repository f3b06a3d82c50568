"""Centralized constants"""

# Redis TTLs
SESSION_TTL_SECONDS = 30 * 24 * 60 * 60  # 30 days

# Execution limits
MAX_STEPS_PER_RUN = 1000
MAX_DELAY_MS = 300000  # 5 minutes, longer delays only warn

# API node timeouts (milliseconds)
DEFAULT_API_TIMEOUT_MS = 30000
MIN_API_TIMEOUT_MS = 1
MAX_API_TIMEOUT_MS = 300000

# Pagination
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Transcript text
DEFAULT_INPUT_PROMPT = "Please provide input:"
FATAL_ERROR_MESSAGE = "Something went wrong. This conversation has ended."

# Allowed HTTP methods for api nodes
ALLOWED_API_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH"}

# Errors that block activation (the rest only block saving)
ACTIVATION_BLOCKING_CODES = {
    "NO_START_NODE",
    "MULTIPLE_START_NODES",
    "EMPTY_MESSAGE",
    "NO_INPUT_TYPE",
    "NO_CONDITIONS",
    "API_NO_URL",
    "DELAY_NO_DURATION",
    "JUMP_NO_TARGET",
    "INVALID_EDGE_SOURCE",
    "INVALID_EDGE_TARGET",
}

# Export format
EXPORT_FORMAT_VERSION = "1.0"

# Tries at claiming the next free version number
VERSION_NUMBER_ATTEMPTS = 5
