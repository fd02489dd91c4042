"""Defaults shared by the pool, dispatcher and client."""

# Pool sizing
DEFAULT_POOL_INIT = 1
DEFAULT_POOL_CAPACITY = 1
DEFAULT_IDLE_TIMEOUT = 6 * 60.0

# Timeouts (seconds)
DEFAULT_CALL_TIMEOUT = 10.0
DEFAULT_REQUEST_TIMEOUT = 10.0

# Retry policy
DEFAULT_ATTEMPTS_PER_ENDPOINT = 2
DEFAULT_OUTER_BACKOFF = 1.0
DEFAULT_INNER_ATTEMPTS = 3
DEFAULT_INNER_BACKOFF = 0.2
CONNECTIVITY_MARKERS = ("connection refused",)
TRANSIENT_MARKERS = ("timed out", "timeout")

# Receipt polling
DEFAULT_RECEIPT_ATTEMPTS = 5
DEFAULT_RECEIPT_BACKOFF = 0.5

# Gas limits
DEFAULT_TRANSFER_GAS_LIMIT = 21_000
DEFAULT_INVOKE_GAS_LIMIT = 1_000_000
DEFAULT_DEPLOY_GAS_LIMIT = 100_000_000

DEFAULT_ENDPOINTS = (
    "http://localhost:8881",
    "http://localhost:8882",
    "http://localhost:8883",
    "http://localhost:8884",
)

LATEST_BLOCK = "latest"
EMPTY_BYTECODE = "0x"
