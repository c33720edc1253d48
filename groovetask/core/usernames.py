"""Username rules and candidate generation.

Everything here is pure; the I/O loop that claims a candidate lives in
:mod:`groovetask.data.identity`.
"""

from __future__ import annotations

import random
import re
from collections.abc import Iterator

MIN_LENGTH = 3
MAX_LENGTH = 20
BASE_MAX_LENGTH = 15
CLAIM_ATTEMPTS = 10
MAX_CHANGES = 3

_VALID = re.compile(r"^[A-Za-z0-9_]+$")
_STRIP = re.compile(r"[^A-Za-z0-9_]")


def is_valid_username(name: str) -> bool:
    return MIN_LENGTH <= len(name) <= MAX_LENGTH and bool(_VALID.match(name))


def derive_base(email: str) -> str:
    """Build the base username from the local part of ``email``.

    Disallowed characters are stripped, short results are padded with
    ``x`` up to three characters and long ones cut to fifteen.
    """
    base = _STRIP.sub("", email.split("@", 1)[0])
    if len(base) < MIN_LENGTH:
        base = base.ljust(MIN_LENGTH, "x")
    return base[:BASE_MAX_LENGTH]


def candidates(
    base: str,
    attempts: int = CLAIM_ATTEMPTS,
    rng: random.Random | None = None,
) -> Iterator[str]:
    """Yield ``base`` then ``attempts - 1`` variants with a 4-digit suffix."""
    rng = rng or random.SystemRandom()
    for attempt in range(attempts):
        if attempt == 0:
            yield base
        else:
            yield f"{base}{rng.randint(1000, 9999)}"
