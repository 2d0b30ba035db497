"""Tests for master password enrollment and login."""

import json

import pytest

from conftest import FAST_KDF, MASTER_PASSWORD
from credvault.auth import AuthState, MasterAuthority
from credvault.errors import CorruptVault, NotEnrolled, PasswordTooWeak, VaultLocked, WrongPassword
from credvault.kdf import KdfParams
from credvault.secure_memory import SecureString


class TestEnrollment:
    """Test cases for setting the master password."""

    def test_not_enrolled_initially(self, authority):
        """A fresh record path means Uninitialized."""
        assert authority.is_enrolled() is False
        assert authority.state is AuthState.UNINITIALIZED

    def test_enroll_unlocks(self, authority):
        """Enrollment persists a record and returns a live key."""
        key = authority.enroll(MASTER_PASSWORD)
        assert authority.is_enrolled()
        assert authority.state is AuthState.UNLOCKED
        assert len(key) == 32
        assert authority.session_key is key

    def test_short_password_rejected(self, authority):
        """Passwords under 6 characters are too weak."""
        with pytest.raises(PasswordTooWeak):
            authority.enroll("abc12")
        assert authority.is_enrolled() is False

    def test_six_characters_accepted(self, authority):
        """Exactly the minimum length is fine."""
        authority.enroll("abc123")
        assert authority.is_enrolled()

    def test_record_contents(self, authority, record_path):
        """The record holds salt, verifier and work factors, never the password."""
        authority.enroll(MASTER_PASSWORD)
        with open(record_path, encoding="utf-8") as f:
            record = json.load(f)

        assert set(record) == {
            "format_version", "salt", "verifier", "iteration_cost", "memory_cost", "parallelism",
        }
        assert record["iteration_cost"] == FAST_KDF.iteration_cost
        assert MASTER_PASSWORD not in json.dumps(record)

    def test_verifier_is_not_session_key(self, authority):
        """The stored verifier is independent of the encryption key."""
        key = authority.enroll(MASTER_PASSWORD)
        record = authority.load_record()
        assert record.verifier != key.get()

    def test_reenroll_replaces_record(self, authority):
        """Enrolling again overwrites salt and invalidates the old key."""
        old_key = authority.enroll(MASTER_PASSWORD)
        old_salt = authority.load_record().salt

        authority.enroll("another-password")

        assert authority.load_record().salt != old_salt
        assert old_key.is_cleared
        with pytest.raises(WrongPassword):
            authority.login(MASTER_PASSWORD)


class TestLogin:
    """Test cases for verifying the master password."""

    def test_login_not_enrolled(self, authority):
        with pytest.raises(NotEnrolled):
            authority.login(MASTER_PASSWORD)

    def test_login_round_trip(self, authority):
        """enroll(p) then login(p) yields the same key material."""
        enrolled_key = authority.enroll(MASTER_PASSWORD).get()
        authority.lock()

        key = authority.login(MASTER_PASSWORD)

        assert key.get() == enrolled_key
        assert authority.state is AuthState.UNLOCKED

    @pytest.mark.parametrize("wrong", [
        "correct horse battery ",
        "Correct horse battery",
        "correct horse batter",
        "something else entirely",
    ])
    def test_wrong_password(self, authority, wrong):
        """Any other password fails."""
        authority.enroll(MASTER_PASSWORD)
        authority.lock()

        with pytest.raises(WrongPassword):
            authority.login(wrong)
        assert authority.state is AuthState.ENROLLED

    def test_secure_string_input(self, authority):
        """A caller-owned SecureString works and stays with the caller."""
        with SecureString(MASTER_PASSWORD) as pwd:
            authority.enroll(pwd)
            authority.lock()
            authority.login(pwd)
            assert not pwd.is_cleared
        assert pwd.is_cleared

    def test_verify_does_not_change_state(self, authority):
        authority.enroll(MASTER_PASSWORD)
        authority.lock()

        assert authority.verify(MASTER_PASSWORD) is True
        assert authority.verify("nope-nope") is False
        assert authority.state is AuthState.ENROLLED

    def test_stored_work_factors_used(self, record_path):
        """Changing the defaults does not break existing records."""
        MasterAuthority(record_path, kdf_params=FAST_KDF).enroll(MASTER_PASSWORD)

        other = MasterAuthority(record_path, kdf_params=KdfParams(2, 16, 1))
        other.login(MASTER_PASSWORD)
        assert other.load_record().iteration_cost == FAST_KDF.iteration_cost
        other.lock()

    def test_corrupt_record(self, authority, record_path):
        """An unreadable record is corruption, not 'not enrolled'."""
        with open(record_path, "w", encoding="utf-8") as f:
            f.write("{not json")

        assert authority.is_enrolled()
        with pytest.raises(CorruptVault):
            authority.login(MASTER_PASSWORD)

    def test_record_with_bad_verifier(self, authority, record_path):
        authority.enroll(MASTER_PASSWORD)
        with open(record_path, encoding="utf-8") as f:
            record = json.load(f)
        record["verifier"] = "AAAA"
        with open(record_path, "w", encoding="utf-8") as f:
            json.dump(record, f)

        with pytest.raises(CorruptVault):
            authority.login(MASTER_PASSWORD)

    @pytest.mark.parametrize("field, value", [
        ("parallelism", 2),
        ("memory_cost", 64 * 1024 * 1024),
        ("iteration_cost", 0),
    ])
    def test_record_with_bad_kdf_params(self, authority, record_path, field, value):
        """Work factors Argon2 would refuse, or that are absurdly large, mean corruption."""
        authority.enroll(MASTER_PASSWORD)
        authority.lock()
        with open(record_path, encoding="utf-8") as f:
            record = json.load(f)
        record[field] = value
        with open(record_path, "w", encoding="utf-8") as f:
            json.dump(record, f)

        with pytest.raises(CorruptVault):
            authority.login(MASTER_PASSWORD)
        with pytest.raises(CorruptVault):
            authority.verify(MASTER_PASSWORD)
        assert authority.state is AuthState.ENROLLED


class TestLock:
    """Test cases for locking."""

    def test_lock_zeroes_key(self, authority):
        key = authority.enroll(MASTER_PASSWORD)
        buffer = key.get_bytearray()

        authority.lock()

        assert key.is_cleared
        assert buffer == bytearray(len(buffer))
        assert authority.state is AuthState.ENROLLED

    def test_lock_idempotent(self, authority):
        authority.lock()
        authority.enroll(MASTER_PASSWORD)
        authority.lock()
        authority.lock()
        assert authority.state is AuthState.ENROLLED

    def test_session_key_requires_unlock(self, authority):
        authority.enroll(MASTER_PASSWORD)
        authority.lock()
        with pytest.raises(VaultLocked):
            authority.session_key
