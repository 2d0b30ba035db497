"""Clearable buffers for passwords and key material.

Python strings are immutable and garbage-collected, so they cannot be
erased. Secrets handled by this package are therefore copied into a
``bytearray`` as early as possible and zeroed when no longer needed:

1. SecureBytes: bytearray wrapper with explicit zeroing
2. SecureString: text secret stored as SecureBytes
3. SessionKey: SecureBytes holding the vault encryption key
4. secure_scope: clears several buffers on every exit path

SECURITY NOTES:
- get() returns an immutable copy; keep its scope as small as possible
- Zeroing is best effort and not a guarantee against memory forensics
"""

from contextlib import contextmanager
from typing import Generator


def secure_zero(data: bytearray | memoryview) -> None:
    """Overwrite a bytearray or writable memoryview with zeros.

    Raises:
        TypeError: If data is not a mutable bytes type
    """
    if isinstance(data, memoryview):
        if data.readonly:
            raise TypeError("Cannot zero readonly memoryview")
    elif not isinstance(data, bytearray):
        raise TypeError(f"Cannot securely zero type: {type(data)}")
    for i in range(len(data)):
        data[i] = 0


class SecureBytes:
    """A wrapper around bytearray that can be explicitly zeroed.

    Usage:
        with SecureBytes(raw_key) as key:
            use(key.get_bytearray())
        # key is zeroed here
    """

    __slots__ = ('_data', '_cleared')

    def __init__(self, data: bytes | bytearray | None = None):
        """Initialize with sensitive data.

        A bytearray is adopted as-is (and zeroed on clear); any other
        bytes-like value is copied.
        """
        if data is None:
            self._data = bytearray()
        elif isinstance(data, bytearray):
            self._data = data
        else:
            self._data = bytearray(data)
        self._cleared = False

    def get(self) -> bytes:
        """Return an immutable copy of the data.

        Raises:
            RuntimeError: If data has already been cleared
        """
        if self._cleared:
            raise RuntimeError("Secure data has already been cleared")
        return bytes(self._data)

    def get_bytearray(self) -> bytearray:
        """Return the internal buffer without copying.

        Do not keep references to it; it is zeroed by clear().

        Raises:
            RuntimeError: If data has already been cleared
        """
        if self._cleared:
            raise RuntimeError("Secure data has already been cleared")
        return self._data

    def clear(self) -> None:
        """Zero and release the internal buffer. Idempotent."""
        if not self._cleared:
            secure_zero(self._data)
            self._data = bytearray()
            self._cleared = True

    @property
    def is_cleared(self) -> bool:
        return self._cleared

    def __len__(self) -> int:
        if self._cleared:
            return 0
        return len(self._data)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.clear()

    def __del__(self) -> None:
        if hasattr(self, '_cleared') and not self._cleared:
            self.clear()

    def __repr__(self) -> str:
        """Safe repr that doesn't expose data."""
        name = type(self).__name__
        if self._cleared:
            return f"{name}(<cleared>)"
        return f"{name}(<{len(self._data)} bytes>)"

    __str__ = __repr__


class SessionKey(SecureBytes):
    """Symmetric vault key, valid only while the vault is unlocked."""

    __slots__ = ()


class SecureString:
    """A text secret (e.g. a master password) that can be cleared.

    Usage:
        with SecureString(typed_password) as pwd:
            authority.login(pwd)
    """

    __slots__ = ('_secure_bytes', '_encoding')

    def __init__(self, data: str | None = None, encoding: str = 'utf-8'):
        self._encoding = encoding
        if data is None:
            self._secure_bytes = SecureBytes()
        else:
            self._secure_bytes = SecureBytes(data.encode(encoding))

    @classmethod
    def coerce(cls, value: "str | SecureString") -> "SecureString":
        """Wrap a plain string; pass an existing SecureString through."""
        if isinstance(value, SecureString):
            return value
        if isinstance(value, str):
            return cls(value)
        raise TypeError(f"Expected str or SecureString, got {type(value).__name__}")

    def get(self) -> str:
        """Return the text. The returned str cannot be erased."""
        return self._secure_bytes.get().decode(self._encoding)

    def encoded(self) -> SecureBytes:
        """Return the underlying encoded buffer (shared, not copied)."""
        return self._secure_bytes

    def clear(self) -> None:
        self._secure_bytes.clear()

    @property
    def is_cleared(self) -> bool:
        return self._secure_bytes.is_cleared

    def __len__(self) -> int:
        """Length in characters."""
        if self._secure_bytes.is_cleared:
            return 0
        return len(self._secure_bytes.get_bytearray().decode(self._encoding))

    def __enter__(self) -> 'SecureString':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.clear()

    def __repr__(self) -> str:
        if self._secure_bytes.is_cleared:
            return "SecureString(<cleared>)"
        return "SecureString(<redacted>)"


@contextmanager
def secure_scope(*secure_objects: SecureBytes | SecureString) -> Generator[None, None, None]:
    """Clear every given buffer when the block exits, however it exits.

    Usage:
        with secure_scope(pwd, key):
            process(pwd.get(), key.get())
    """
    try:
        yield
    finally:
        for obj in secure_objects:
            obj.clear()
