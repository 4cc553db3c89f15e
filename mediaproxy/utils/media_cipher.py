"""Authenticated encryption of upstream URLs embedded in proxy requests.

Tokens are URL-safe base64 (unpadded) of ``nonce(12) || tag(16) || ciphertext``
produced by AES-256-GCM.
"""

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mediaproxy.config import derive_encryption_key

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16
_HEADER_SIZE = NONCE_SIZE + TAG_SIZE


def to_base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def from_base64url(encoded: str) -> bytes | None:
    """Decode unpadded URL-safe base64, returning None on malformed input."""
    padding = "=" * (-len(encoded) % 4)
    try:
        return base64.urlsafe_b64decode(f"{encoded}{padding}")
    except (binascii.Error, ValueError):
        return None


class MediaCipher:
    """Encrypts and decrypts source URLs with a key derived from the proxy secret.

    Instances are immutable and safe to share across threads.
    """

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def _aead(self) -> AESGCM:
        # Raises ConfigurationError when the secret is missing
        return AESGCM(derive_encryption_key(self._secret))

    def encrypt(self, url: str) -> str:
        """Encrypt a URL with a fresh random nonce."""
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead().encrypt(nonce, url.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return to_base64url(nonce + tag + ciphertext)

    def decrypt(self, token: str) -> str | None:
        """Decrypt a token produced by ``encrypt``.

        Returns None for any malformed, truncated or tampered token. Beyond the
        minimum length check the full AEAD decrypt is always attempted.
        """
        aead = self._aead()

        payload = from_base64url(token)
        if payload is None or len(payload) <= _HEADER_SIZE:
            return None

        nonce = payload[:NONCE_SIZE]
        tag = payload[NONCE_SIZE:_HEADER_SIZE]
        ciphertext = payload[_HEADER_SIZE:]

        try:
            plaintext = aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            logger.debug("Rejected media token with invalid authentication tag")
            return None

        try:
            url = plaintext.decode("utf-8")
        except UnicodeDecodeError:
            return None

        return url or None
