"""Authenticated encryption for vault entries.

AES-256-GCM with a fresh 96-bit random nonce per encryption. Decryption
fails closed: a wrong key, nonce, ciphertext or associated data raises
AuthenticationFailed and no plaintext is returned.
"""

import logging
from typing import Optional, Set, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from credvault.config import KEY_LENGTH, NONCE_LENGTH
from credvault.errors import AuthenticationFailed, NonceReuseDetected
from credvault.random_source import RandomSource, default_random
from credvault.secure_memory import SecureBytes

logger = logging.getLogger(__name__)

KeyMaterial = Union[SecureBytes, bytes, bytearray]


def _key_buffer(key: KeyMaterial):
    if isinstance(key, SecureBytes):
        key = key.get_bytearray()
    if len(key) != KEY_LENGTH:
        raise ValueError(f"Key must be {KEY_LENGTH} bytes")
    return key


def encrypt(
    key: KeyMaterial,
    plaintext: bytes,
    associated_data: bytes = b"",
    random: Optional[RandomSource] = None,
) -> Tuple[bytes, bytes]:
    """Encrypt plaintext under key with a fresh nonce.

    Args:
        key: 32-byte session key
        plaintext: Data to encrypt
        associated_data: Authenticated but unencrypted context
        random: Randomness provider for the nonce

    Returns:
        Tuple of (ciphertext, nonce); ciphertext includes the GCM tag
    """
    nonce = (random or default_random).token_bytes(NONCE_LENGTH)
    ciphertext = AESGCM(_key_buffer(key)).encrypt(nonce, plaintext, associated_data)
    return ciphertext, nonce


def decrypt(
    key: KeyMaterial,
    ciphertext: bytes,
    nonce: bytes,
    associated_data: bytes = b"",
) -> bytes:
    """Decrypt and authenticate a ciphertext.

    Raises:
        AuthenticationFailed: If key, nonce, ciphertext or associated data
            do not match exactly
    """
    if len(nonce) != NONCE_LENGTH:
        raise AuthenticationFailed("Nonce has wrong length")
    try:
        return AESGCM(_key_buffer(key)).decrypt(nonce, ciphertext, associated_data)
    except (InvalidTag, ValueError):
        raise AuthenticationFailed("Ciphertext failed authentication") from None


class CipherEngine:
    """Encrypts and decrypts under one session key.

    Keeps a ledger of every nonce used under the key, both issued by this
    engine and observed in persisted entries, and refuses to use one twice.
    """

    def __init__(self, key: SecureBytes, random: Optional[RandomSource] = None):
        self._key = key
        self._random = random or default_random
        self._nonces: Set[bytes] = set()

    @property
    def key(self) -> SecureBytes:
        return self._key

    @property
    def is_active(self) -> bool:
        """False once the session key has been zeroed."""
        return not self._key.is_cleared

    def observe(self, nonce: bytes) -> None:
        """Record a nonce already in use under this key.

        Raises:
            NonceReuseDetected: If the nonce was already recorded
        """
        if nonce in self._nonces:
            logger.error("Duplicate nonce found under the active key")
            raise NonceReuseDetected("Nonce already used under this key")
        self._nonces.add(nonce)

    def encrypt(self, plaintext: bytes, associated_data: bytes = b"") -> Tuple[bytes, bytes]:
        ciphertext, nonce = encrypt(self._key, plaintext, associated_data, self._random)
        self.observe(nonce)
        return ciphertext, nonce

    def decrypt(self, ciphertext: bytes, nonce: bytes, associated_data: bytes = b"") -> bytes:
        return decrypt(self._key, ciphertext, nonce, associated_data)
