"""
Token encryption/decryption service using AES-256-GCM.

Ciphertext format: base64(nonce):base64(ciphertext):base64(tag).
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config import ConfigurationError, require_encryption_key

NONCE_BYTES = 16
TAG_BYTES = 16
KEY_BYTES = 32
DELIMITER = ":"


class TokenDecryptionError(ValueError):
    """Raised when a stored token is malformed or fails authentication."""


def _get_key() -> bytes:
    """Decode the configured base64 key. A missing or short key is fatal."""
    raw = require_encryption_key()
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY must be base64-encoded") from exc
    if len(key) != KEY_BYTES:
        raise ConfigurationError(f"TOKEN_ENCRYPTION_KEY must decode to {KEY_BYTES} bytes")
    return key


def encrypt_token(token: str) -> str:
    """
    Encrypt a token for secure storage.

    Args:
        token: Plain text token

    Returns:
        nonce, payload and tag, each base64-encoded, joined by ':'
    """
    aesgcm = AESGCM(_get_key())
    nonce = os.urandom(NONCE_BYTES)
    sealed = aesgcm.encrypt(nonce, token.encode("utf-8"), None)
    payload, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return DELIMITER.join(
        base64.b64encode(part).decode("ascii") for part in (nonce, payload, tag)
    )


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt an encrypted token, verifying its authentication tag.

    Args:
        encrypted_token: Value produced by encrypt_token

    Returns:
        Plain text token
    """
    key = _get_key()
    parts = (encrypted_token or "").split(DELIMITER)
    if len(parts) != 3:
        raise TokenDecryptionError("Encrypted token must have nonce, payload and tag")
    try:
        nonce, payload, tag = (base64.b64decode(part, validate=True) for part in parts)
    except (binascii.Error, ValueError) as exc:
        raise TokenDecryptionError("Encrypted token is not valid base64") from exc
    if len(tag) != TAG_BYTES or not nonce:
        raise TokenDecryptionError("Encrypted token has an invalid nonce or tag")

    try:
        decrypted = AESGCM(key).decrypt(nonce, payload + tag, None)
    except InvalidTag as exc:
        raise TokenDecryptionError("Encrypted token failed authentication") from exc
    return decrypted.decode("utf-8")


def generate_encryption_key() -> str:
    """Generate a new random encryption key for .env file."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")
