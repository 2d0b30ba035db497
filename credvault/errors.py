"""Exception taxonomy for the vault core.

Every failure the core reports is one of these types. None of them is
fatal to the process; the caller decides how to render them.
"""


class CredVaultError(Exception):
    """Base exception for all vault core errors."""
    pass


# Authentication

class AuthError(CredVaultError):
    """Master password enrollment or verification failed."""
    pass


class NotEnrolled(AuthError):
    """No master password has been set up yet."""
    pass


class PasswordTooWeak(AuthError):
    """Candidate master password does not meet the minimum length."""
    pass


class WrongPassword(AuthError):
    """Candidate master password does not match the stored verifier."""
    pass


# Cryptography

class CryptoError(CredVaultError):
    """Encryption or decryption failed."""
    pass


class AuthenticationFailed(CryptoError):
    """Ciphertext, nonce or key do not match (tampering or wrong key)."""
    pass


class NonceReuseDetected(CryptoError):
    """A nonce was about to be used twice under the same key."""
    pass


# Vault

class VaultError(CredVaultError):
    """Vault store operation failed."""
    pass


class VaultLocked(VaultError):
    """Operation needs an unlocked vault."""
    pass


class EntryNotFound(VaultError):
    """No entry with the given id."""
    pass


class CorruptVault(VaultError):
    """Persisted state failed to parse or authenticate."""
    pass


class StorageIOFailure(VaultError):
    """Underlying file operation failed."""
    pass


class VaultInUse(StorageIOFailure):
    """Another session holds the vault file lock."""
    pass


# Password generation

class GeneratorError(CredVaultError, ValueError):
    """Invalid password generation request."""
    pass


class NoCharacterClassSelected(GeneratorError):
    """All character classes were disabled."""
    pass


class LengthOutOfRange(GeneratorError):
    """Requested length is outside the supported range."""
    pass
