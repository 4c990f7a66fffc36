"""Shared constants for keytally.

Key sizes, retry bounds, rate limits and shutdown timings used across modules
are defined here. No magic numbers in other modules; import from here.
"""

# ─── API Key Generation ──────────────────────────────────────────────────────

# Printable prefix on every issued key. Makes keys recognisable in logs and
# secret scanners; carries no entropy.
API_KEY_PREFIX: str = "kt_"

# Random bytes per key, fed to secrets.token_urlsafe().
# 32 bytes = 256 bits, double the 128-bit floor for brute-force resistance.
API_KEY_RANDOM_BYTES: int = 32

# Attempts to generate a non-colliding key before raising GenerationError.
# At 256 bits a single collision is already astronomically unlikely.
API_KEY_MAX_ATTEMPTS: int = 3

# Characters of the key fingerprint that may appear in log lines.
FINGERPRINT_LOG_CHARS: int = 12

# ─── Rate Limiting ────────────────────────────────────────────────────────────

# Per-client cap on key issuance / revocation.
KEY_MANAGEMENT_RATE_LIMIT: str = "20/minute"

# ─── Background Work ──────────────────────────────────────────────────────────

# Seconds the shutdown sequence waits for in-flight usage tasks before
# abandoning them. Anything still pending is dropped (advisory accounting).
DEFAULT_DRAIN_TIMEOUT_S: float = 5.0

# ─── Usage Log Queries ────────────────────────────────────────────────────────

# Default page size for UsageEventFilters.
DEFAULT_QUERY_LIMIT: int = 50
