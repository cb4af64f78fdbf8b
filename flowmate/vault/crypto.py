"""
AES-256-GCM encryption for stored OAuth tokens.

Envelope format is ``nonce:tag:ciphertext``, each hex encoded. Every call to
``encrypt`` draws a fresh 12-byte nonce, so the same token never encrypts to
the same envelope twice.

The key comes from FLOWMATE_ENCRYPTION_KEY (64 hex chars). Without it the
cipher runs on a random per-process key: fine for local development, but
anything encrypted under it is lost on restart.
"""

from __future__ import annotations

import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from flowmate.errors import DecryptionError, InvalidInputError, KeyConfigError

logger = logging.getLogger(__name__)

KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16

_cached_cipher: TokenCipher | None = None


def generate_key() -> str:
    """Return a new random key in the hex form FLOWMATE_ENCRYPTION_KEY expects."""
    return secrets.token_bytes(KEY_BYTES).hex()


def parse_key(hex_key: str) -> bytes:
    """Decode a configured hex key. Raises KeyConfigError if unusable."""
    try:
        key = bytes.fromhex(hex_key)
    except ValueError as e:
        raise KeyConfigError("FLOWMATE_ENCRYPTION_KEY must be hex encoded") from e
    if len(key) != KEY_BYTES:
        raise KeyConfigError(
            f"FLOWMATE_ENCRYPTION_KEY must be a {KEY_BYTES}-byte hex string "
            f"({KEY_BYTES * 2} characters), got {len(hex_key)} characters"
        )
    return key


class TokenCipher:
    """Symmetric encrypt/decrypt of credential strings."""

    def __init__(self, key: bytes | None = None) -> None:
        if key is None:
            logger.warning(
                "FLOWMATE_ENCRYPTION_KEY not set, using a random ephemeral key. "
                "Tokens encrypted now will NOT be decryptable after restart. "
                "Run 'flowmate vault keygen' and set the key before storing real credentials."
            )
            key = secrets.token_bytes(KEY_BYTES)
            self.ephemeral = True
        else:
            if len(key) != KEY_BYTES:
                raise KeyConfigError(f"Encryption key must be {KEY_BYTES} bytes, got {len(key)}")
            self.ephemeral = False
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str | bytes) -> str:
        """Encrypt plaintext. Returns a ``nonce:tag:ciphertext`` hex envelope."""
        if isinstance(plaintext, str):
            data = plaintext.encode("utf-8")
        elif isinstance(plaintext, bytes):
            data = plaintext
        else:
            raise InvalidInputError(
                f"Token to encrypt must be str or bytes, got {type(plaintext).__name__}"
            )
        if not data.strip():
            raise InvalidInputError("Token to encrypt must be a non-empty string")

        nonce = secrets.token_bytes(NONCE_BYTES)
        sealed = self._aesgcm.encrypt(nonce, data, None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, envelope: str) -> str:
        """Decrypt an envelope produced by ``encrypt``."""
        if not isinstance(envelope, str) or not envelope:
            raise DecryptionError("Encrypted token must be a non-empty string")

        parts = envelope.split(":")
        if len(parts) != 3:
            raise DecryptionError(
                f"Invalid envelope format: expected 3 components, got {len(parts)}"
            )
        try:
            nonce, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        except ValueError as e:
            raise DecryptionError("Invalid envelope format: components must be hex") from e
        if len(nonce) != NONCE_BYTES or len(tag) != TAG_BYTES:
            raise DecryptionError("Invalid envelope format: bad nonce or tag length")

        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError(
                "Failed to decrypt token: authentication failed (tampered data or wrong key)"
            ) from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Failed to decrypt token: plaintext is not UTF-8") from e


def get_cipher() -> TokenCipher:
    """Return the process-wide cipher built from config (cached after first call)."""
    global _cached_cipher
    if _cached_cipher is not None:
        return _cached_cipher

    from flowmate.config import get_config

    hex_key = get_config().encryption_key
    _cached_cipher = TokenCipher(parse_key(hex_key) if hex_key else None)
    return _cached_cipher


def reset_cipher_cache() -> None:
    """Clear the cached cipher (for testing)."""
    global _cached_cipher
    _cached_cipher = None
