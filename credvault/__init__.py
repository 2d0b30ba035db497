"""Local Credential Vault Core Package.

Provides modular components for master-password protected credential
storage:
- config: Centralized configuration constants
- errors: Exception taxonomy
- random_source: CSPRNG access
- secure_memory: Clearable buffers for secrets
- kdf: Argon2id key and verifier derivation
- crypto: AES-GCM authenticated encryption
- storage: Atomic file I/O and session file locks
- auth: Master password lifecycle
- vault_store: Encrypted credential CRUD
- generator: Password generation
- events: Security event logging
- service: PasswordVault facade for front-ends
"""

# Configuration constants
from credvault.config import (
    VAULT_FILE,
    MASTER_FILE,
    MIN_MASTER_PASSWORD_LENGTH,
    MIN_PASSWORD_LENGTH,
    MAX_PASSWORD_LENGTH,
    DEFAULT_PASSWORD_LENGTH,
)

# Errors
from credvault.errors import (
    CredVaultError,
    AuthError,
    NotEnrolled,
    PasswordTooWeak,
    WrongPassword,
    CryptoError,
    AuthenticationFailed,
    NonceReuseDetected,
    VaultError,
    VaultLocked,
    EntryNotFound,
    CorruptVault,
    StorageIOFailure,
    VaultInUse,
    GeneratorError,
    NoCharacterClassSelected,
    LengthOutOfRange,
)

# Secrets in memory
from credvault.secure_memory import SecureBytes, SecureString, SessionKey, secure_scope

# Crypto
from credvault.kdf import KdfParams
from credvault.crypto import CipherEngine, encrypt, decrypt

# Authentication
from credvault.auth import AuthState, MasterAuthority

# Vault
from credvault.models import EntrySummary
from credvault.vault_store import VaultStore

# Generation
from credvault.generator import CharacterClasses, generate_password

# Logging
from credvault.events import configure_audit_log, log_security_event

# Facade
from credvault.service import PasswordVault

__version__ = "1.0.0"

__all__ = [
    # Config
    "VAULT_FILE",
    "MASTER_FILE",
    "MIN_MASTER_PASSWORD_LENGTH",
    "MIN_PASSWORD_LENGTH",
    "MAX_PASSWORD_LENGTH",
    "DEFAULT_PASSWORD_LENGTH",
    # Errors
    "CredVaultError",
    "AuthError",
    "NotEnrolled",
    "PasswordTooWeak",
    "WrongPassword",
    "CryptoError",
    "AuthenticationFailed",
    "NonceReuseDetected",
    "VaultError",
    "VaultLocked",
    "EntryNotFound",
    "CorruptVault",
    "StorageIOFailure",
    "VaultInUse",
    "GeneratorError",
    "NoCharacterClassSelected",
    "LengthOutOfRange",
    # Secure memory
    "SecureBytes",
    "SecureString",
    "SessionKey",
    "secure_scope",
    # Crypto
    "KdfParams",
    "CipherEngine",
    "encrypt",
    "decrypt",
    # Auth
    "AuthState",
    "MasterAuthority",
    # Vault
    "EntrySummary",
    "VaultStore",
    # Generation
    "CharacterClasses",
    "generate_password",
    # Logging
    "configure_audit_log",
    "log_security_event",
    # Facade
    "PasswordVault",
]
