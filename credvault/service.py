"""Synchronous vault API for presentation layers.

PasswordVault wires the master authority, the vault store and the
password generator together behind plain-value calls. Front-ends hold one
PasswordVault and never see key material or nonces.
"""

import logging
import os
from typing import List, Optional, Tuple

from credvault.auth import MasterAuthority, PasswordInput, validate_password_strength
from credvault.config import DEFAULT_PASSWORD_LENGTH, MASTER_FILE, VAULT_FILE
from credvault.errors import CorruptVault, VaultLocked, WrongPassword
from credvault.events import ensure_audit_log, log_security_event
from credvault.generator import CharacterClasses, generate_password
from credvault.kdf import KdfParams
from credvault.models import EntrySummary
from credvault.random_source import RandomSource
from credvault.secure_memory import SecureString, SessionKey
from credvault.storage import FileLock, delete_file, ensure_parent_directory, file_exists
from credvault.vault_store import REKEY_SUFFIX, VaultStore

logger = logging.getLogger(__name__)


class PasswordVault:
    """One user's vault: master password lifecycle plus credential CRUD.

    Usage:
        with PasswordVault.in_directory(data_dir) as vault:
            if not vault.is_enrolled():
                vault.enroll(master)
            else:
                vault.login(master)
            entry_id = vault.add("mail", "me@example.com", "s3cret")

    Args:
        record_path: Master password record file
        vault_path: Encrypted vault file
        kdf_params: Work factors for new enrollments
        strict: Refuse to open a vault with damaged entries (see VaultStore)
        random: Randomness provider
    """

    def __init__(
        self,
        record_path: str = MASTER_FILE,
        vault_path: str = VAULT_FILE,
        kdf_params: Optional[KdfParams] = None,
        strict: bool = True,
        random: Optional[RandomSource] = None,
    ):
        self.vault_path = vault_path
        self.strict = strict
        self._random = random
        self.authority = MasterAuthority(record_path, kdf_params, random)
        self._store: Optional[VaultStore] = None

    @classmethod
    def in_directory(cls, data_dir: str, **kwargs) -> "PasswordVault":
        """Vault using the default file names inside ``data_dir``."""
        return cls(
            record_path=os.path.join(data_dir, os.path.basename(MASTER_FILE)),
            vault_path=os.path.join(data_dir, os.path.basename(VAULT_FILE)),
            **kwargs,
        )

    # -- lifecycle -----------------------------------------------------------

    def open(self) -> "PasswordVault":
        ensure_audit_log()
        ensure_parent_directory(self.authority.record_path)
        ensure_parent_directory(self.vault_path)
        return self

    def close(self) -> None:
        """Lock the vault. Safe to call on every exit path."""
        self.lock()

    def __enter__(self) -> "PasswordVault":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- authentication ------------------------------------------------------

    def is_enrolled(self) -> bool:
        return self.authority.is_enrolled()

    @property
    def is_unlocked(self) -> bool:
        return self._store is not None and self._store.is_open

    def enroll(self, password: PasswordInput) -> None:
        """Set the master password.

        On first use this creates an empty vault. When already enrolled
        and unlocked it changes the master password, re-encrypting every
        entry under the new key in one atomic step.

        Raises:
            PasswordTooWeak: If the password is too short
            VaultLocked: If enrolled but not logged in
            CorruptVault: If a vault file exists without a master record
        """
        if not self.authority.is_enrolled():
            if file_exists(self.vault_path):
                raise CorruptVault(
                    f"Vault {self.vault_path} exists without a master password record; reset() first"
                )
            key = self.authority.enroll(password)
            try:
                self._open_store(key)
            except Exception:
                self.authority.lock()
                raise
            return

        if not self.is_unlocked:
            raise VaultLocked("Log in before changing the master password.")
        self._rekey_to(password)

    def login(self, password: PasswordInput) -> None:
        """Verify the master password and open the vault.

        Raises:
            NotEnrolled: If no master password is set
            WrongPassword: If the password does not match
            CorruptVault: If the vault fails its integrity check
        """
        self.lock()
        key = self.authority.login(password)
        try:
            self._open_store(key)
        except Exception:
            self.authority.lock()
            raise

    def lock(self) -> None:
        """Close the vault and zero the session key. Idempotent."""
        try:
            self._close_store()
        finally:
            self.authority.lock()

    def change_master_password(self, current: PasswordInput, new: PasswordInput) -> None:
        """Replace the master password after confirming the current one.

        Raises:
            WrongPassword: If ``current`` is wrong
            PasswordTooWeak: If ``new`` is too short
        """
        new_secret = SecureString.coerce(new)
        try:
            validate_password_strength(new_secret)
        finally:
            if new_secret is not new:
                new_secret.clear()

        if self.is_unlocked:
            if not self.authority.verify(current):
                log_security_event("master_password_change", "FAILURE", level=logging.WARNING)
                raise WrongPassword("Current password is incorrect.")
            self._rekey_to(new)
            return

        # Leave the vault locked again if the change does not go through
        self.login(current)
        try:
            self._rekey_to(new)
        except Exception:
            self.lock()
            raise

    def _rekey_to(self, new_password: PasswordInput) -> None:
        store = self._require_store()
        enrollment = self.authority.prepare_enrollment(new_password)
        try:
            store.stage_rekey(enrollment.session_key)
        except Exception:
            enrollment.session_key.clear()
            raise

        try:
            self.authority.commit_enrollment(enrollment)
        except Exception:
            store.abort_rekey()
            raise

        # The record now names the new key; a crash past this point is
        # finished by the roll-forward in VaultStore.open().
        store.commit_rekey()
        log_security_event("master_password_change", "SUCCESS", {"entries": len(store)})

    def reset(self) -> None:
        """Operator reset: delete the master record and the vault.

        Every stored credential is lost. Used to recover from a forgotten
        master password or an unrecoverable integrity emergency.
        """
        self.lock()
        for path in (
            self.authority.record_path,
            self.vault_path,
            self.vault_path + REKEY_SUFFIX,
            FileLock(self.vault_path).lock_path,
        ):
            delete_file(path)
        log_security_event("vault_reset", "SUCCESS", {"scope": "all"}, level=logging.WARNING)

    # -- store plumbing ------------------------------------------------------

    def _open_store(self, key: SessionKey) -> None:
        self._store = VaultStore.open(self.vault_path, key, strict=self.strict, random=self._random)

    def _close_store(self) -> None:
        store, self._store = self._store, None
        if store is not None:
            store.close()

    def _require_store(self) -> VaultStore:
        if self._store is None or not self._store.is_open:
            raise VaultLocked("Vault is locked.")
        return self._store

    # -- credentials ---------------------------------------------------------

    def list(self) -> Tuple[EntrySummary, ...]:
        return self._require_store().list()

    def find(self, service_name: str) -> Tuple[EntrySummary, ...]:
        return self._require_store().find(service_name)

    def reveal(self, entry_id: str) -> str:
        return self._require_store().reveal(entry_id)

    def add(self, service_name: str, username: str, password: str) -> str:
        return self._require_store().add(service_name, username, password)

    def update(self, entry_id: str, username: Optional[str] = None, password: Optional[str] = None) -> None:
        self._require_store().update(entry_id, username=username, password=password)

    def delete(self, entry_id: str) -> None:
        self._require_store().delete(entry_id)

    @property
    def integrity_emergency(self) -> bool:
        return self._require_store().integrity_emergency

    def discard_damaged_entries(self) -> List[str]:
        return self._require_store().discard_damaged_entries()

    # -- generation ----------------------------------------------------------

    def generate(
        self,
        length: int = DEFAULT_PASSWORD_LENGTH,
        classes: CharacterClasses = CharacterClasses(),
        require_each: bool = False,
    ) -> str:
        return generate_password(length, classes, require_each, self._random)

    def add_generated(
        self,
        service_name: str,
        username: str,
        length: int = DEFAULT_PASSWORD_LENGTH,
        classes: CharacterClasses = CharacterClasses(),
        require_each: bool = False,
    ) -> str:
        """Store a freshly generated password; returns the new entry id."""
        password = self.generate(length, classes, require_each)
        return self.add(service_name, username, password)
