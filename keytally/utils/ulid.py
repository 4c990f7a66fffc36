"""ULID generation for keytally.

ULIDs identify usage events (``UsageEvent.event_id``) and requests
(``X-Request-ID`` response header, ``request_id`` log field). They are
lexicographically sortable by creation time, which keeps the usage log
naturally ordered.

They are NOT used for API keys: a ULID carries only 80 random bits, below
the 128-bit floor for credentials (see keytally/auth/keys.py).

Uses the ``python-ulid`` library; do not hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID, charset ``[0-9A-HJKMNP-TV-Z]``, exactly 26 chars.

    Example::

        event_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
        assert len(event_id) == 26
    """
    return str(ULID())
