"""Password-based AES-256-GCM encryption for export bundles.

The key is derived from a one-time password with PBKDF2-HMAC-SHA256
(100k iterations, random 32-byte salt); each encryption uses a fresh 12-byte
IV. The password is returned to the data subject once and never stored, so a
lost password makes the bundle unreadable even to operators.

At-rest format (stable, must stay decryptable):
    {"ciphertext": b64, "iv": b64, "authTag": b64, "salt": b64}

Usage:
    from src.security.encryption import decrypt, encrypt, generate_password

    password = generate_password()
    envelope = encrypt(json_text, password)
    plaintext = decrypt(envelope, password)
"""

from __future__ import annotations

import base64
import os
import secrets
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, ConfigDict, Field

from src.errors import StorageError

PBKDF2_ITERATIONS = 100_000
KEY_SIZE = 32  # AES-256
SALT_SIZE = 32
IV_SIZE = 12  # 96-bit nonce, NIST recommended for GCM
TAG_SIZE = 16
PASSWORD_BYTES = 32


class EncryptedEnvelope(BaseModel):
    """Base64 fields of an encrypted bundle, serialized with camelCase ``authTag``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ciphertext: str
    iv: str
    auth_tag: str = Field(alias="authTag")
    salt: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> EncryptedEnvelope:
        return cls.model_validate_json(raw)


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _unb64(value: str) -> bytes:
    return base64.b64decode(value, validate=True)


def derive_key(password: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def generate_password() -> str:
    """Random URL-safe password (256 bits of entropy)."""
    return secrets.token_urlsafe(PASSWORD_BYTES)


def encrypt(plaintext: str, password: str) -> EncryptedEnvelope:
    """Encrypt ``plaintext`` with a key derived from ``password``."""
    if not password:
        msg = "Encryption password is required"
        raise ValueError(msg)
    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(IV_SIZE)
    sealed = AESGCM(derive_key(password, salt)).encrypt(iv, plaintext.encode("utf-8"), None)
    return EncryptedEnvelope(
        ciphertext=_b64(sealed[:-TAG_SIZE]),
        iv=_b64(iv),
        auth_tag=_b64(sealed[-TAG_SIZE:]),
        salt=_b64(salt),
    )


def decrypt(envelope: EncryptedEnvelope | dict[str, Any], password: str) -> str:
    """Inverse of ``encrypt``. Wrong password or tampering raises StorageError."""
    if isinstance(envelope, dict):
        envelope = EncryptedEnvelope.model_validate(envelope)
    try:
        salt = _unb64(envelope.salt)
        iv = _unb64(envelope.iv)
        sealed = _unb64(envelope.ciphertext) + _unb64(envelope.auth_tag)
        plaintext = AESGCM(derive_key(password, salt)).decrypt(iv, sealed, None)
    except (InvalidTag, ValueError) as exc:
        msg = "Decryption failed: invalid password or corrupted bundle"
        raise StorageError(msg) from exc
    return plaintext.decode("utf-8")
