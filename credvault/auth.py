"""Master password authentication.

Owns the master password record and the session key derived from it.
The lifecycle is Uninitialized -> Enrolled (locked) -> Unlocked; the
session key only exists while Unlocked and is zeroed on lock().
"""

import enum
import hmac
import logging
from typing import NamedTuple, Optional, Union

from pydantic import ValidationError

from credvault import kdf
from credvault.config import MASTER_FILE, MIN_MASTER_PASSWORD_LENGTH
from credvault.errors import CorruptVault, NotEnrolled, PasswordTooWeak, VaultLocked, WrongPassword
from credvault.events import log_security_event
from credvault.kdf import KdfParams
from credvault.models import MasterPasswordRecord
from credvault.random_source import RandomSource, default_random
from credvault.secure_memory import SecureString, SessionKey
from credvault.storage import file_exists, load_json, save_json_atomic

logger = logging.getLogger(__name__)

PasswordInput = Union[str, SecureString]


class AuthState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    ENROLLED = "enrolled"
    UNLOCKED = "unlocked"


class Enrollment(NamedTuple):
    """A derived but not yet persisted master password record."""

    record: MasterPasswordRecord
    session_key: SessionKey


def validate_password_strength(password: SecureString) -> None:
    """Check a candidate master password meets the minimum length.

    Raises:
        PasswordTooWeak: If it is too short
    """
    if len(password) < MIN_MASTER_PASSWORD_LENGTH:
        raise PasswordTooWeak(
            f"Password too short. Use at least {MIN_MASTER_PASSWORD_LENGTH} characters."
        )


class MasterAuthority:
    """Enrolls and verifies the master password for one record file.

    Args:
        record_path: Where the master password record is stored
        kdf_params: Work factors for new enrollments (existing records
            always use the factors stored with them)
        random: Randomness provider for salts
    """

    def __init__(
        self,
        record_path: str = MASTER_FILE,
        kdf_params: Optional[KdfParams] = None,
        random: Optional[RandomSource] = None,
    ):
        self.record_path = record_path
        self.kdf_params = (kdf_params or KdfParams()).validate()
        self._random = random or default_random
        self._session_key: Optional[SessionKey] = None

    @property
    def state(self) -> AuthState:
        if self._session_key is not None and not self._session_key.is_cleared:
            return AuthState.UNLOCKED
        if self.is_enrolled():
            return AuthState.ENROLLED
        return AuthState.UNINITIALIZED

    @property
    def is_unlocked(self) -> bool:
        return self.state is AuthState.UNLOCKED

    @property
    def session_key(self) -> SessionKey:
        """The live session key.

        Raises:
            VaultLocked: If no password has been verified this session
        """
        if self._session_key is None or self._session_key.is_cleared:
            raise VaultLocked("Not authenticated. Please log in first.")
        return self._session_key

    def is_enrolled(self) -> bool:
        """Check if a master password has been configured."""
        return file_exists(self.record_path)

    def load_record(self) -> MasterPasswordRecord:
        """Load the stored record.

        Raises:
            NotEnrolled: If no record exists
            CorruptVault: If the record cannot be parsed
        """
        data = load_json(self.record_path)
        if data is None:
            raise NotEnrolled("No master password has been set.")
        try:
            return MasterPasswordRecord.model_validate(data)
        except ValidationError as e:
            raise CorruptVault(f"Invalid master password record {self.record_path}") from e

    def prepare_enrollment(self, password: PasswordInput) -> Enrollment:
        """Derive a new record and key for ``password`` without saving.

        Raises:
            PasswordTooWeak: If the password is shorter than the minimum
        """
        secret = SecureString.coerce(password)
        try:
            validate_password_strength(secret)
            salt = kdf.generate_salt(self._random)
            derived = kdf.derive(secret.encoded(), salt, self.kdf_params)
        finally:
            if secret is not password:
                secret.clear()
        record = MasterPasswordRecord.create(salt, derived.verifier, self.kdf_params)
        return Enrollment(record, derived.session_key)

    def commit_enrollment(self, enrollment: Enrollment) -> SessionKey:
        """Persist a prepared record, replacing any existing one.

        The previous session key, if any, is zeroed.
        """
        replacing = self.is_enrolled()
        try:
            save_json_atomic(self.record_path, enrollment.record.model_dump(mode="json"))
        except Exception:
            enrollment.session_key.clear()
            log_security_event("enroll", "FAILURE", level=logging.ERROR)
            raise

        self._swap_session_key(enrollment.session_key)
        log_security_event("enroll", "SUCCESS", {"replaced": replacing})
        logger.info("Master password %s", "replaced" if replacing else "enrolled")
        return enrollment.session_key

    def enroll(self, password: PasswordInput) -> SessionKey:
        """Set the master password and unlock.

        Overwrites an existing record. Entries encrypted under the old key
        become unreadable unless the caller re-keys them first.

        Raises:
            PasswordTooWeak: If the password is shorter than the minimum
        """
        try:
            enrollment = self.prepare_enrollment(password)
        except PasswordTooWeak:
            log_security_event("enroll", "REJECTED", {"reason": "too_short"})
            raise
        return self.commit_enrollment(enrollment)

    def _derive_for(self, password: PasswordInput, record: MasterPasswordRecord) -> kdf.DerivedKeys:
        secret = SecureString.coerce(password)
        try:
            return kdf.derive(secret.encoded(), record.salt, record.kdf_params)
        finally:
            if secret is not password:
                secret.clear()

    def verify(self, password: PasswordInput) -> bool:
        """Check a password against the record without changing state.

        Raises:
            NotEnrolled: If no record exists
        """
        record = self.load_record()
        derived = self._derive_for(password, record)
        derived.session_key.clear()
        return hmac.compare_digest(derived.verifier, record.verifier)

    def login(self, password: PasswordInput) -> SessionKey:
        """Verify the master password and unlock.

        Raises:
            NotEnrolled: If no record exists
            WrongPassword: If the password does not match
        """
        record = self.load_record()
        derived = self._derive_for(password, record)

        if not hmac.compare_digest(derived.verifier, record.verifier):
            derived.session_key.clear()
            log_security_event("login_attempt", "FAILURE", level=logging.WARNING)
            raise WrongPassword("Invalid master password.")

        self._swap_session_key(derived.session_key)
        log_security_event("login_attempt", "SUCCESS")
        return derived.session_key

    def lock(self) -> None:
        """Zero and drop the session key. Idempotent."""
        if self._session_key is None:
            return
        self._session_key.clear()
        self._session_key = None
        log_security_event("lock", "SUCCESS")

    def _swap_session_key(self, new_key: SessionKey) -> None:
        old, self._session_key = self._session_key, new_key
        if old is not None and old is not new_key:
            old.clear()
