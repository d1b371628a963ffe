"""
Application Constants Configuration
"""

from typing import List


# Provider
PROVIDER_NAME: str = "kling"
PROVIDER_MODEL: str = "klingai/kling-v2.6-motion-control"
PROVIDER_MODE: str = "std"
PROVIDER_CHARACTER_ORIENTATION: str = "video"

# Provider polling (the gateway reports success/failure asynchronously)
PROVIDER_POLL_INTERVAL_S: float = 5.0
PROVIDER_POLL_TIMEOUT_S: float = 14 * 60
PROVIDER_DOWNLOAD_ATTEMPTS: int = 3

# Extended-timeout transport. Worst-case provider latency is ~14 minutes,
# default client timeouts are ~5 minutes.
TRANSPORT_CONNECT_TIMEOUT_S: float = 30.0
TRANSPORT_READ_TIMEOUT_S: float = 15 * 60
TRANSPORT_WRITE_TIMEOUT_S: float = 15 * 60
TRANSPORT_POOL_TIMEOUT_S: float = 60.0
TRANSPORT_MAX_CONNECTIONS: int = 50

# Retry Configuration
MAX_RETRY_ATTEMPTS: int = 3
RETRY_BACKOFF_STEP_S: float = 10.0

# Execution host budget
JOB_MAX_DURATION_S: int = 800
JOB_STALE_GRACE_S: int = 120
# The runner deadline fires this much earlier than the worker kill, leaving
# time to record the failure
JOB_FINALIZE_MARGIN_S: int = 30

# Listing
GENERATION_LIST_LIMIT: int = 50

# Client poller
CLIENT_POLL_INTERVAL_S: float = 10.0

# Generation statuses
PENDING_STATUSES: List[str] = ["uploading", "pending", "processing"]
TERMINAL_STATUSES: List[str] = ["completed", "failed", "cancelled"]

# Aspect ratios accepted on pending creation
ASPECT_RATIOS: List[str] = ["9:16", "16:9", "fill"]

# Prefix for anonymous identities
ANONYMOUS_USER_PREFIX: str = "anon_"
