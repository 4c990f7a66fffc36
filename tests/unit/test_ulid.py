"""Unit tests for keytally/utils/ulid.py."""

from __future__ import annotations

import re

from keytally.utils.ulid import generate_ulid

_ULID_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def test_format() -> None:
    assert _ULID_RE.match(generate_ulid())


def test_unique() -> None:
    ids = {generate_ulid() for _ in range(1_000)}
    assert len(ids) == 1_000


def test_time_ordered_prefix() -> None:
    first = generate_ulid()
    second = generate_ulid()
    # 48-bit millisecond timestamp prefix (10 chars) never goes backwards.
    assert second[:10] >= first[:10]
