from os import getenv

VERSION: str = "0.2.0"

# Default transport timeout, in seconds
TIMEOUT: float = float(getenv("HTTPULL_TIMEOUT", 10.0))

# Size of each socket read
BUFFER: int = int(getenv("HTTPULL_BUFFER", 64_000))

USER_AGENT: str = getenv("HTTPULL_USER_AGENT", f"httpull/{VERSION} (Python)")

# Keepalive pool defaults, used when `setKeepalive()` is given no arguments
KEEPALIVE_IDLE: float = float(getenv("HTTPULL_KEEPALIVE_IDLE", 30.0))
KEEPALIVE_SIZE: int = int(getenv("HTTPULL_KEEPALIVE_SIZE", 16))

LOG_REQUESTS: bool = getenv("HTTPULL_LOG_REQUESTS", "1") == "1"

# EOF
