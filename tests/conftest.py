"""Shared fixtures for vault tests."""

import os

import pytest

from credvault.auth import MasterAuthority
from credvault.kdf import KdfParams
from credvault.service import PasswordVault
from credvault.vault_store import VaultStore

MASTER_PASSWORD = "correct horse battery"

# Smallest Argon2 work factors, so tests stay fast
FAST_KDF = KdfParams(iteration_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def record_path(tmp_path):
    return str(tmp_path / "master.json")


@pytest.fixture
def vault_path(tmp_path):
    return str(tmp_path / "vault.json")


@pytest.fixture
def authority(record_path):
    auth = MasterAuthority(record_path, kdf_params=FAST_KDF)
    yield auth
    auth.lock()


@pytest.fixture
def session_key(authority):
    return authority.enroll(MASTER_PASSWORD)


@pytest.fixture
def store(vault_path, session_key):
    with VaultStore.open(vault_path, session_key) as s:
        yield s


@pytest.fixture
def vault(tmp_path):
    """A PasswordVault that is enrolled and unlocked."""
    v = PasswordVault.in_directory(str(tmp_path / "data"), kdf_params=FAST_KDF)
    with v:
        v.enroll(MASTER_PASSWORD)
        yield v


def leftover_files(directory):
    """Temp or staging files left next to the vault."""
    return [
        name for name in os.listdir(directory)
        if name.endswith(".tmp") or name.endswith(".rekey")
    ]
