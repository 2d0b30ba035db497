"""Master password key derivation.

Uses Argon2id (memory-hard) to turn the master password and a random salt
into two independent 32-byte values: the session key that encrypts vault
entries and the verifier stored on disk to check candidate passwords.
Both come from one 64-byte derivation split in half, so the stored
verifier does not reveal the key.
"""

from typing import NamedTuple, Optional

from argon2.low_level import Type, hash_secret_raw

from credvault.config import (
    KDF_MEMORY_COST,
    KDF_PARALLELISM,
    KDF_TIME_COST,
    KEY_LENGTH,
    MAX_KDF_MEMORY_COST,
    SALT_LENGTH,
    VERIFIER_LENGTH,
)
from credvault.random_source import RandomSource, default_random
from credvault.secure_memory import SecureBytes, SessionKey


class KdfParams(NamedTuple):
    """Argon2id work factors, persisted with the master password record."""

    iteration_cost: int = KDF_TIME_COST
    memory_cost: int = KDF_MEMORY_COST  # KiB
    parallelism: int = KDF_PARALLELISM

    def validate(self) -> "KdfParams":
        """Check the parameters are acceptable to Argon2.

        Raises:
            ValueError: If any parameter is out of range
        """
        if self.iteration_cost < 1:
            raise ValueError("iteration_cost must be at least 1")
        if self.parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        if self.memory_cost < 8 * self.parallelism:
            raise ValueError("memory_cost must be at least 8 KiB per lane")
        if self.memory_cost > MAX_KDF_MEMORY_COST:
            raise ValueError(f"memory_cost must not exceed {MAX_KDF_MEMORY_COST} KiB")
        return self


class DerivedKeys(NamedTuple):
    session_key: SessionKey
    verifier: bytes


def generate_salt(random: Optional[RandomSource] = None) -> bytes:
    """Generate a fresh salt for a new enrollment."""
    return (random or default_random).token_bytes(SALT_LENGTH)


def derive(password: SecureBytes, salt: bytes, params: KdfParams) -> DerivedKeys:
    """Derive the session key and verifier from a master password.

    Args:
        password: Encoded master password
        salt: Salt stored in the master password record
        params: Work factors stored in the master password record

    Returns:
        DerivedKeys with a clearable session key and the verifier bytes
    """
    params.validate()
    if len(salt) < 8:
        raise ValueError("salt must be at least 8 bytes")

    raw = bytearray(
        hash_secret_raw(
            secret=password.get(),
            salt=salt,
            time_cost=params.iteration_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=KEY_LENGTH + VERIFIER_LENGTH,
            type=Type.ID,
        )
    )
    try:
        session_key = SessionKey(bytearray(raw[:KEY_LENGTH]))
        verifier = bytes(raw[KEY_LENGTH:])
    finally:
        for i in range(len(raw)):
            raw[i] = 0
    return DerivedKeys(session_key, verifier)
