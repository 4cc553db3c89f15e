"""Service for building and verifying signed media proxy URLs."""

import hashlib
import hmac
import logging
import re
from collections.abc import Mapping
from typing import Any

from mediaproxy.config import ConfigurationError, Settings
from mediaproxy.consts import MEDIA_PROXY_PATH
from mediaproxy.utils.media_cipher import MediaCipher
from mediaproxy.utils.media_params import (
    SignedProxyRequest,
    TransformParams,
    UnsignedProxyRequest,
    is_allowed_media_url,
    normalize_transform_params,
)

logger = logging.getLogger(__name__)

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_PROXY_URL_RE = re.compile(
    rf"^https?://[^/]+{re.escape(MEDIA_PROXY_PATH)}\?", re.IGNORECASE
)


class MediaSignerService:
    """Signs upstream image URLs into first-party proxy URLs.

    This service handles:
    - Passing through relative, already-proxied and non-allow-listed URLs
    - Encrypting the upstream URL and signing the canonical query
    - Verifying signatures on inbound proxy requests in constant time

    Stateless apart from the secret, so a single instance is shared.
    """

    def __init__(self, config: Settings, cipher: MediaCipher) -> None:
        self.config = config
        self.cipher = cipher

    def build_signed_url(
        self,
        source_url: str,
        params: TransformParams | Mapping[str, Any] | None = None,
        absolute: bool = False,
    ) -> str:
        """Build a signed ``/api/media`` URL for an upstream image.

        Args:
            source_url: Upstream image URL (or a site path / proxy URL)
            params: Optional ``w``, ``h``, ``q`` and ``fit`` transform parameters
            absolute: Return an absolute URL on the configured site origin

        Returns:
            The signed proxy URL, or ``source_url`` unchanged when it is empty,
            already safe to embed, or on a host that is not allow-listed

        Raises:
            ValidationException: If ``params`` contains invalid values
        """
        if not source_url:
            return source_url
        if source_url.startswith("/") or _PROXY_URL_RE.match(source_url):
            return self._to_absolute(source_url) if absolute else source_url
        if not is_allowed_media_url(source_url):
            logger.debug("Not proxying image from non-allow-listed host")
            return source_url

        normalized = normalize_transform_params(params)
        unsigned = UnsignedProxyRequest(
            u=self.cipher.encrypt(source_url), params=normalized
        )
        signed = SignedProxyRequest(
            u=unsigned.u, params=normalized, sig=self.sign(unsigned.canonical())
        )

        path = f"{MEDIA_PROXY_PATH}?{signed.query_string()}"
        return self._to_absolute(path) if absolute else path

    def sign(self, canonical: str) -> str:
        """Compute the lowercase hex HMAC-SHA256 of a canonical query string."""
        return hmac.new(
            self._hmac_key(), canonical.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def verify_signature(self, request: SignedProxyRequest) -> bool:
        """Check a request's signature against its own ``u``, ``w``, ``h``, ``q``, ``fit``.

        The signature binds to the encrypted token, not the decrypted URL.
        Never raises; any failure to compute the expected value is a mismatch.
        """
        canonical = request.unsigned().canonical()
        try:
            expected = self.sign(canonical)
        except Exception as e:
            logger.error("Cannot compute media proxy signature: %s", e)
            return False

        if len(request.sig) != len(expected):
            return False
        return hmac.compare_digest(request.sig.encode("utf-8"), expected.encode("utf-8"))

    def _hmac_key(self) -> bytes:
        if not self.config.media_proxy_secret:
            raise ConfigurationError("MEDIA_PROXY_SECRET is required")
        return self.config.media_proxy_secret.encode("utf-8")

    def _to_absolute(self, path: str) -> str:
        if _ABSOLUTE_URL_RE.match(path):
            return path
        return f"{self.config.site_url.rstrip('/')}{path}"
