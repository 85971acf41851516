"""Listener handles — short random tokens.

Uniqueness is best-effort. Callers that need uniqueness within a scope
(the store, per key) check for collisions themselves.
"""

import random

ALPHABET = "QWERTYUIOPASDFGHJZXCVB"
DEFAULT_LENGTH = 6

_random = random.Random()


def new_id(length: int = DEFAULT_LENGTH, alphabet: str = ALPHABET) -> str:
    return "".join(_random.choice(alphabet) for _ in range(length))
