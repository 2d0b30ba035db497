"""Pydantic models for the persisted documents.

Defines the master password record and vault file layouts. Binary fields
are stored as base64 strings; anything that fails validation on load is
treated as corruption by the callers.
"""

import base64
import binascii
from datetime import datetime, timezone
from typing import Annotated, List, NamedTuple

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)

from credvault.config import FORMAT_VERSION, NONCE_LENGTH, VERIFIER_LENGTH
from credvault.kdf import KdfParams


def _decode_base64(value):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise ValueError("Invalid base64 data") from e
    raise ValueError("Expected base64 encoded string")


Base64Bytes = Annotated[
    bytes,
    BeforeValidator(_decode_base64),
    PlainSerializer(lambda v: base64.b64encode(v).decode("ascii"), return_type=str, when_used="json"),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MasterPasswordRecord(BaseModel):
    """Salt, verifier and work factors for the master password."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    format_version: int = FORMAT_VERSION
    salt: Base64Bytes = Field(min_length=8)
    verifier: Base64Bytes = Field(min_length=VERIFIER_LENGTH, max_length=VERIFIER_LENGTH)
    iteration_cost: int = Field(ge=1)
    memory_cost: int = Field(ge=8)
    parallelism: int = Field(ge=1)

    @field_validator("format_version")
    @classmethod
    def check_format_version(cls, value: int) -> int:
        if value != FORMAT_VERSION:
            raise ValueError(f"Unsupported format version {value}")
        return value

    @model_validator(mode="after")
    def check_kdf_params(self) -> "MasterPasswordRecord":
        self.kdf_params.validate()
        return self

    @classmethod
    def create(cls, salt: bytes, verifier: bytes, params: KdfParams) -> "MasterPasswordRecord":
        return cls(
            salt=salt,
            verifier=verifier,
            iteration_cost=params.iteration_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
        )

    @property
    def kdf_params(self) -> KdfParams:
        return KdfParams(self.iteration_cost, self.memory_cost, self.parallelism)


class EntrySummary(NamedTuple):
    """What callers may see about an entry without unlocking its secret."""

    id: str
    service_name: str
    username: str


class CredentialEntry(BaseModel):
    """One stored login; the password is held only as ciphertext."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    service_name: str
    username: str
    nonce: Base64Bytes = Field(min_length=NONCE_LENGTH, max_length=NONCE_LENGTH)
    ciphertext: Base64Bytes = Field(min_length=16)  # at least the GCM tag
    created_at: datetime
    updated_at: datetime

    @property
    def associated_data(self) -> bytes:
        """Binds the ciphertext to this entry's id."""
        return self.id.encode("utf-8")

    def summary(self) -> EntrySummary:
        return EntrySummary(self.id, self.service_name, self.username)


class VaultDocument(BaseModel):
    """The whole vault file: a version tag and the ordered entries."""

    model_config = ConfigDict(extra="forbid")

    format_version: int = FORMAT_VERSION
    entries: List[CredentialEntry] = Field(default_factory=list)

    @field_validator("format_version")
    @classmethod
    def check_format_version(cls, value: int) -> int:
        if value != FORMAT_VERSION:
            raise ValueError(f"Unsupported format version {value}")
        return value

    @field_validator("entries")
    @classmethod
    def check_unique_ids(cls, entries: List[CredentialEntry]) -> List[CredentialEntry]:
        seen = set()
        for entry in entries:
            if entry.id in seen:
                raise ValueError(f"Duplicate entry id {entry.id}")
            seen.add(entry.id)
        return entries
