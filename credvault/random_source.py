"""Cryptographically secure randomness.

Thin wrapper over the ``secrets`` module so every salt, nonce and
generated password in the package comes from the OS CSPRNG.
"""

import secrets
from typing import MutableSequence, Sequence, TypeVar

T = TypeVar("T")


class RandomSource:
    """CSPRNG-backed provider for salts, nonces and password characters."""

    def __init__(self):
        self._system = secrets.SystemRandom()

    def token_bytes(self, length: int) -> bytes:
        """Return ``length`` random bytes."""
        if length <= 0:
            raise ValueError("length must be positive")
        return secrets.token_bytes(length)

    def choice(self, population: Sequence[T]) -> T:
        """Pick one element uniformly at random."""
        return secrets.choice(population)

    def shuffle(self, items: MutableSequence) -> None:
        """Shuffle ``items`` in place."""
        self._system.shuffle(items)


default_random = RandomSource()
