"""Encrypted credential storage.

A VaultStore owns the vault file for one unlocked session: it holds an
exclusive lock on the file, keeps the entries in memory and writes the
whole vault atomically after every change. Each password is encrypted on
its own with a fresh nonce, bound to its entry id.
"""

import logging
import threading
import uuid
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from credvault.crypto import CipherEngine
from credvault.errors import (
    AuthenticationFailed,
    CorruptVault,
    EntryNotFound,
    NonceReuseDetected,
    VaultError,
    VaultLocked,
)
from credvault.events import log_security_event
from credvault.models import CredentialEntry, EntrySummary, VaultDocument, utcnow
from credvault.random_source import RandomSource
from credvault.secure_memory import SecureBytes, secure_zero
from credvault.storage import (
    FileLock,
    delete_file,
    ensure_parent_directory,
    file_exists,
    load_json,
    replace_file,
    save_json_atomic,
    write_json_synced,
)

logger = logging.getLogger(__name__)

REKEY_SUFFIX = ".rekey"


def _parse_document(data: Optional[dict], path: str) -> VaultDocument:
    if data is None:
        return VaultDocument()
    try:
        return VaultDocument.model_validate(data)
    except ValidationError as e:
        raise CorruptVault(f"Invalid vault file {path}") from e


class VaultStore:
    """CRUD access to the encrypted entries of one vault file.

    Use VaultStore.open() rather than the constructor. Every public method
    is serialized by an internal lock, so one store may be shared between
    threads. Operations raise VaultLocked once the store is closed or its
    session key has been zeroed.

    While an integrity emergency is active (entries that failed
    authentication, or a detected nonce reuse) reads still work but every
    mutation raises CorruptVault until discard_damaged_entries() is called.
    """

    def __init__(self, path: str, session_key: SecureBytes, random: Optional[RandomSource] = None):
        self.path = path
        self._random = random
        self._engine = CipherEngine(session_key, random)
        self._file_lock = FileLock(path)
        self._mutex = threading.RLock()
        self._entries: Dict[str, CredentialEntry] = {}
        self._damaged: Set[str] = set()
        self._emergency: Optional[str] = None
        self._pending: Optional[Tuple[CipherEngine, Dict[str, CredentialEntry]]] = None
        self._closed = True

    @classmethod
    def open(
        cls,
        path: str,
        session_key: SecureBytes,
        strict: bool = True,
        random: Optional[RandomSource] = None,
    ) -> "VaultStore":
        """Lock and load the vault at ``path``, creating none until first write.

        Args:
            path: Vault file location
            session_key: Key from MasterAuthority.enroll() or login()
            strict: If True, any entry failing the integrity check aborts
                the open with CorruptVault; if False the store opens in
                integrity-emergency mode instead
            random: Randomness provider for nonces

        Raises:
            VaultInUse: If another store holds the file
            CorruptVault: If the file is unreadable or fails integrity
        """
        store = cls(path, session_key, random)
        store._open(strict)
        return store

    # -- lifecycle -----------------------------------------------------------

    def _open(self, strict: bool) -> None:
        if not self._engine.is_active:
            raise VaultLocked("Session key has been zeroed. Please log in again.")
        ensure_parent_directory(self.path)
        self._file_lock.acquire()
        try:
            self._roll_forward_rekey()
            document = _parse_document(load_json(self.path), self.path)
            self._load(document, strict)
        except Exception:
            self._file_lock.release()
            log_security_event("vault_open", "FAILURE", level=logging.ERROR)
            raise
        self._closed = False
        log_security_event("vault_open", "SUCCESS", {"entries": len(self._entries)})

    def _load(self, document: VaultDocument, strict: bool) -> None:
        entries: Dict[str, CredentialEntry] = {}
        damaged: Set[str] = set()
        reused = False

        for entry in document.entries:
            entries[entry.id] = entry
            try:
                self._engine.observe(entry.nonce)
            except NonceReuseDetected:
                reused = True
                damaged.add(entry.id)
                continue
            try:
                self._decrypt_entry(self._engine, entry)
            except AuthenticationFailed:
                damaged.add(entry.id)

        if damaged:
            log_security_event(
                "vault_integrity",
                "FAILURE",
                {"damaged_entries": sorted(damaged), "nonce_reuse": reused},
                level=logging.ERROR,
            )
            if strict:
                raise CorruptVault(
                    f"{len(damaged)} of {len(entries)} entries failed the integrity check"
                )
            self._emergency = "nonce reuse detected" if reused else "entries failed authentication"
            logger.error("Vault %s opened in integrity emergency mode: %s", self.path, self._emergency)

        self._entries = entries
        self._damaged = damaged

    def close(self) -> None:
        """Drop in-memory entries and release the file lock. Idempotent."""
        with self._mutex:
            if self._closed:
                return
            try:
                if self._pending is not None:
                    self.abort_rekey()
            finally:
                self._entries = {}
                self._damaged = set()
                self._closed = True
                self._file_lock.release()

    @property
    def is_open(self) -> bool:
        return not self._closed and self._engine.is_active

    @property
    def integrity_emergency(self) -> bool:
        return self._emergency is not None

    @property
    def damaged_entries(self) -> Tuple[str, ...]:
        with self._mutex:
            return tuple(sorted(self._damaged))

    def __enter__(self) -> "VaultStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- guards --------------------------------------------------------------

    def _require_open(self) -> None:
        if not self.is_open:
            raise VaultLocked("Vault is locked.")

    def _require_writable(self) -> None:
        self._require_open()
        if self._emergency is not None:
            raise CorruptVault(
                f"Vault integrity emergency ({self._emergency}); "
                "mutation refused until damaged entries are discarded"
            )

    def _get(self, entry_id: str) -> CredentialEntry:
        try:
            return self._entries[entry_id]
        except KeyError:
            raise EntryNotFound(f"No entry with id {entry_id!r}") from None

    # -- crypto helpers ------------------------------------------------------

    @staticmethod
    def _decrypt_entry(engine: CipherEngine, entry: CredentialEntry) -> bytearray:
        return bytearray(engine.decrypt(entry.ciphertext, entry.nonce, entry.associated_data))

    def _encrypt(self, entry_id: str, password: str) -> Tuple[bytes, bytes]:
        try:
            return self._engine.encrypt(password.encode("utf-8"), entry_id.encode("utf-8"))
        except NonceReuseDetected:
            self._emergency = "nonce reuse detected"
            log_security_event("vault_integrity", "NONCE_REUSE", level=logging.CRITICAL)
            raise

    def _persist(self, entries: Dict[str, CredentialEntry]) -> None:
        document = VaultDocument(entries=list(entries.values()))
        save_json_atomic(self.path, document.model_dump(mode="json"))

    # -- queries -------------------------------------------------------------

    def list(self) -> Tuple[EntrySummary, ...]:
        """Snapshot of (id, service_name, username) for every entry."""
        with self._mutex:
            self._require_open()
            return tuple(entry.summary() for entry in self._entries.values())

    def find(self, service_name: str) -> Tuple[EntrySummary, ...]:
        """Entries whose service matches ``service_name``, ignoring case."""
        wanted = service_name.strip().casefold()
        return tuple(s for s in self.list() if s.service_name.casefold() == wanted)

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)

    def reveal(self, entry_id: str) -> str:
        """Decrypt and return one entry's password.

        Raises:
            EntryNotFound: If the id is unknown
            AuthenticationFailed: If the entry fails authentication
        """
        with self._mutex:
            self._require_open()
            entry = self._get(entry_id)
            try:
                plaintext = self._decrypt_entry(self._engine, entry)
            except AuthenticationFailed:
                log_security_event(
                    "vault_integrity", "FAILURE", {"entry_id": entry_id}, level=logging.ERROR
                )
                raise
            try:
                return plaintext.decode("utf-8")
            finally:
                secure_zero(plaintext)

    # -- mutations -----------------------------------------------------------

    def add(self, service_name: str, username: str, password: str) -> str:
        """Encrypt and store a new entry; returns its id once persisted."""
        if not service_name or not service_name.strip():
            raise ValueError("Service name cannot be empty")

        with self._mutex:
            self._require_writable()
            entry_id = uuid.uuid4().hex
            while entry_id in self._entries:
                entry_id = uuid.uuid4().hex

            ciphertext, nonce = self._encrypt(entry_id, password)
            now = utcnow()
            entry = CredentialEntry(
                id=entry_id,
                service_name=service_name.strip(),
                username=username,
                nonce=nonce,
                ciphertext=ciphertext,
                created_at=now,
                updated_at=now,
            )
            entries = dict(self._entries)
            entries[entry_id] = entry
            self._persist(entries)
            self._entries = entries

        logger.debug("Added entry %s", entry_id)
        return entry_id

    def update(self, entry_id: str, username: Optional[str] = None, password: Optional[str] = None) -> None:
        """Change an entry's username and/or password.

        A new password is encrypted with a fresh nonce.

        Raises:
            EntryNotFound: If the id is unknown
        """
        with self._mutex:
            self._require_writable()
            entry = self._get(entry_id)

            changes = {"updated_at": utcnow()}
            if username is not None:
                changes["username"] = username
            if password is not None:
                ciphertext, nonce = self._encrypt(entry_id, password)
                changes["ciphertext"] = ciphertext
                changes["nonce"] = nonce

            entries = dict(self._entries)
            entries[entry_id] = entry.model_copy(update=changes)
            self._persist(entries)
            self._entries = entries

    def delete(self, entry_id: str) -> None:
        """Remove an entry.

        Raises:
            EntryNotFound: If the id is unknown
        """
        with self._mutex:
            self._require_writable()
            self._get(entry_id)
            entries = dict(self._entries)
            del entries[entry_id]
            self._persist(entries)
            self._entries = entries

    def discard_damaged_entries(self) -> List[str]:
        """Operator reset after an integrity emergency.

        Drops every entry that failed authentication, persists the vault
        and allows mutation again.

        Returns:
            Ids of the discarded entries
        """
        with self._mutex:
            self._require_open()
            discarded = sorted(self._damaged)
            entries = {k: v for k, v in self._entries.items() if k not in self._damaged}
            self._persist(entries)
            self._entries = entries
            self._damaged = set()
            self._emergency = None

        log_security_event("vault_reset", "SUCCESS", {"discarded_entries": discarded})
        return discarded

    # -- re-key --------------------------------------------------------------

    @property
    def _rekey_path(self) -> str:
        return self.path + REKEY_SUFFIX

    def stage_rekey(self, new_key: SecureBytes) -> None:
        """Re-encrypt every entry under ``new_key`` into a side file.

        Nothing visible changes until commit_rekey(). If any entry fails
        to decrypt, nothing is written and the error propagates.

        Raises:
            AuthenticationFailed: If an entry cannot be decrypted
            CorruptVault: During an integrity emergency
        """
        with self._mutex:
            self._require_writable()
            if self._pending is not None:
                self.abort_rekey()

            new_engine = CipherEngine(new_key, self._random)
            new_entries: Dict[str, CredentialEntry] = {}
            for entry_id, entry in self._entries.items():
                plaintext = self._decrypt_entry(self._engine, entry)
                try:
                    ciphertext, nonce = new_engine.encrypt(bytes(plaintext), entry.associated_data)
                finally:
                    secure_zero(plaintext)
                new_entries[entry_id] = entry.model_copy(
                    update={"ciphertext": ciphertext, "nonce": nonce}
                )

            document = VaultDocument(entries=list(new_entries.values()))
            try:
                write_json_synced(self._rekey_path, document.model_dump(mode="json"))
            except Exception:
                delete_file(self._rekey_path)
                raise
            self._pending = (new_engine, new_entries)

    def commit_rekey(self) -> None:
        """Move the staged vault into place and switch to the new key.

        Works even if the old session key has already been zeroed.
        """
        with self._mutex:
            if self._closed:
                raise VaultLocked("Vault is locked.")
            if self._pending is None:
                raise VaultError("No re-key has been staged")
            new_engine, new_entries = self._pending
            replace_file(self._rekey_path, self.path)
            self._engine = new_engine
            self._entries = new_entries
            self._pending = None

        log_security_event("vault_rekey", "SUCCESS", {"entries": len(new_entries)})

    def abort_rekey(self) -> None:
        """Throw away a staged re-key. Idempotent."""
        with self._mutex:
            self._pending = None
            delete_file(self._rekey_path)

    def rekey(self, new_key: SecureBytes) -> None:
        """Re-encrypt every entry under ``new_key`` as one atomic step."""
        with self._mutex:
            self.stage_rekey(new_key)
            self.commit_rekey()

    def _roll_forward_rekey(self) -> None:
        """Finish or discard a re-key interrupted by a crash.

        A staged file that fully authenticates under the opening key means
        the new master password record was already saved; move it into
        place. Anything else is a leftover from an aborted change.
        """
        if not file_exists(self._rekey_path):
            return

        try:
            staged = _parse_document(load_json(self._rekey_path), self._rekey_path)
            for entry in staged.entries:
                secure_zero(self._decrypt_entry(self._engine, entry))
        except (CorruptVault, AuthenticationFailed):
            logger.warning("Discarding stale re-key file %s", self._rekey_path)
            delete_file(self._rekey_path)
            return

        logger.warning("Completing interrupted re-key of %s", self.path)
        replace_file(self._rekey_path, self.path)
        log_security_event("vault_rekey", "RECOVERED", {"entries": len(staged.entries)})
