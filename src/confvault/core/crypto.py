"""Password-derived key management and authenticated encryption.

Blobs produced by :func:`seal` are self-describing: the random nonce is
prepended to the ChaCha20-Poly1305 ciphertext, so storage backends persist
them as opaque bytes.

Example:
    ```python
    from confvault.core import crypto

    salt = crypto.generate_salt()
    key = crypto.derive("secret", salt)
    blob = crypto.seal(key, b"data")
    assert crypto.open(key, blob) == b"data"
    ```
"""

from __future__ import annotations

import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import InvalidPasswordError, StorageError

SALT_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16
KEY_LEN = 32
PBKDF2_ITERATIONS = 100_000


def generate_salt() -> bytes:
    """Return a fresh random salt for a new repository."""
    return os.urandom(SALT_LEN)


def derive(password: str, salt: bytes) -> bytes:
    """Derive a symmetric key from a password and the repository salt.

    Uses PBKDF2-HMAC-SHA256 so that every password guess costs
    ``PBKDF2_ITERATIONS`` hash rounds.

    Args:
        password: The repository password.
        salt: The repository salt, exactly ``SALT_LEN`` bytes.

    Returns:
        A ``KEY_LEN`` byte key.

    Raises:
        StorageError: If the salt has the wrong length.
    """
    if len(salt) != SALT_LEN:
        raise StorageError(f"Repository salt must be {SALT_LEN} bytes, got {len(salt)}")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LEN,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def seal(key: bytes, plaintext: bytes) -> bytes:
    """Encrypt ``plaintext`` under ``key`` with a fresh random nonce."""
    nonce = os.urandom(NONCE_LEN)
    return nonce + ChaCha20Poly1305(key).encrypt(nonce, plaintext, None)


def open(key: bytes, blob: bytes) -> bytes:  # noqa: A001
    """Decrypt a blob produced by :func:`seal`.

    Raises:
        InvalidPasswordError: If the blob is truncated, was tampered with,
            or was sealed under a different key.
    """
    if len(blob) < NONCE_LEN + TAG_LEN:
        raise InvalidPasswordError()
    nonce, ciphertext = blob[:NONCE_LEN], blob[NONCE_LEN:]
    try:
        return ChaCha20Poly1305(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise InvalidPasswordError() from None


def content_hash(data: bytes) -> str:
    """Return the SHA-256 hex digest of ``data``."""
    return hashlib.sha256(data).hexdigest()
