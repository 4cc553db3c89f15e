"""Service for verifying media proxy requests and fetching upstream images."""

import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from prometheus_client import Counter, Histogram

from mediaproxy.exceptions import (
    ExternalServiceException,
    ProcessingException,
    UpstreamNotFoundException,
    ValidationException,
)
from mediaproxy.services.media_signer_service import MediaSignerService
from mediaproxy.utils.media_cipher import MediaCipher
from mediaproxy.utils.media_params import (
    NUMERIC_PARAM_RANGES,
    SignedProxyRequest,
    TransformParams,
    UnsignedProxyRequest,
    has_only_allowed_query_keys,
    is_allowed_media_url,
    parse_fit,
    parse_int_in_range,
)

logger = logging.getLogger(__name__)

# Media proxy Prometheus metrics (module-level)
MEDIA_PROXY_OPERATIONS_TOTAL = Counter(
    "media_proxy_operations_total",
    "Total media proxy operations",
    ["status", "error_type"],
)
MEDIA_PROXY_OPERATION_DURATION = Histogram(
    "media_proxy_operation_duration_seconds",
    "Duration of media proxy operations in seconds",
)
MEDIA_PROXY_FETCH_DURATION = Histogram(
    "media_proxy_upstream_fetch_duration_seconds",
    "Duration of upstream image fetches in seconds",
)
MEDIA_PROXY_IMAGE_SIZE = Histogram(
    "media_proxy_image_size_bytes",
    "Size of fetched images in bytes",
)

_SIGNATURE_RE = re.compile(r"[0-9a-f]{64}", re.IGNORECASE)

# Flask request.args (a MultiDict) or a plain mapping of str or list values
QueryInput = Mapping[str, Any]


def record_media_proxy_operation(
    status: str | None,
    error_type: str | None,
    operation_duration: float | None = None,
    fetch_duration: float | None = None,
    image_size: int | None = None,
) -> None:
    """Record a media proxy operation metric."""
    try:
        if status is not None and error_type is not None:
            MEDIA_PROXY_OPERATIONS_TOTAL.labels(
                status=status, error_type=error_type
            ).inc()
        if operation_duration is not None:
            MEDIA_PROXY_OPERATION_DURATION.observe(operation_duration)
        if fetch_duration is not None:
            MEDIA_PROXY_FETCH_DURATION.observe(fetch_duration)
        if image_size is not None:
            MEDIA_PROXY_IMAGE_SIZE.observe(image_size)
    except Exception as e:
        logger.error("Error recording media proxy metric: %s", e)


@dataclass(frozen=True)
class ProxyQueryAccepted:
    """A well-formed proxy query. Its signature has not been checked yet."""

    params: SignedProxyRequest
    ok: bool = True


@dataclass(frozen=True)
class ProxyQueryRejected:
    """A proxy query refused during parsing, with the response to send."""

    status: int
    message: str
    ok: bool = False


ProxyQueryResult = ProxyQueryAccepted | ProxyQueryRejected


@dataclass(frozen=True)
class UpstreamImage:
    """Image bytes and the headers forwarded from the upstream host."""

    content: bytes
    content_type: str
    content_length: str | None = None
    content_encoding: str | None = None


def _single_value(query: QueryInput, key: str) -> str | None:
    """Return the first value supplied for a query key."""
    value = query.get(key)
    if isinstance(value, list | tuple):
        return value[0] if value else None
    return value


class MediaProxyService:
    """Service for authenticating proxy requests and fetching the upstream image.

    This service handles:
    - Parsing and validating inbound ``/api/media`` queries
    - Resolving the upstream URL with forwarded transform parameters
    - Fetching the upstream image with a bounded timeout

    Created per request; it holds no mutable state of its own.
    """

    def __init__(
        self,
        signer: MediaSignerService,
        cipher: MediaCipher,
        fetch_timeout: float,
    ) -> None:
        self.signer = signer
        self.cipher = cipher
        self.fetch_timeout = fetch_timeout

    def parse_query(self, query: QueryInput) -> ProxyQueryResult:
        """Validate an inbound proxy query without authenticating it.

        Checks run in a fixed order and stop at the first failure: query keys,
        ``u`` presence, ``u`` decryption, upstream host, ``sig`` format, then
        each transform parameter.

        Args:
            query: Request query arguments (a ``MultiDict`` or a plain mapping)

        Returns:
            ``ProxyQueryAccepted`` with the parsed request, or
            ``ProxyQueryRejected`` carrying the HTTP status and message
        """
        if not has_only_allowed_query_keys(query.keys()):
            return ProxyQueryRejected(400, "invalid query keys")

        u = _single_value(query, "u")
        if not u:
            return ProxyQueryRejected(400, "u is required")

        source_url = self.cipher.decrypt(u)
        if source_url is None:
            return ProxyQueryRejected(400, "u is invalid")
        if not is_allowed_media_url(source_url):
            logger.warning("Rejected media request for non-allow-listed host")
            return ProxyQueryRejected(403, "u host is not allowed")

        sig = _single_value(query, "sig")
        if not sig or not _SIGNATURE_RE.fullmatch(sig):
            return ProxyQueryRejected(400, "sig is invalid")

        try:
            numeric = {
                key: parse_int_in_range(_single_value(query, key), key, *bounds)
                for key, bounds in NUMERIC_PARAM_RANGES.items()
            }
            fit = parse_fit(_single_value(query, "fit"))
        except ValidationException as e:
            return ProxyQueryRejected(400, e.message)

        return ProxyQueryAccepted(
            SignedProxyRequest(
                u=u,
                params=TransformParams(fit=fit, **numeric),
                sig=sig.lower(),
            )
        )

    def verify_signature(self, request: SignedProxyRequest) -> bool:
        return self.signer.verify_signature(request)

    def build_upstream_url(self, request: UnsignedProxyRequest) -> str:
        """Resolve the upstream URL for an authenticated request.

        The token is decrypted and the host re-checked here, independently of
        parsing. Supplied transform parameters overwrite any of the same name
        on the source URL; others are appended in canonical order.

        Raises:
            ProcessingException: If the token no longer resolves to an
                allow-listed URL
        """
        source_url = self.cipher.decrypt(request.u)
        if source_url is None or not is_allowed_media_url(source_url):
            raise ProcessingException("resolve upstream URL", "u is invalid")

        overrides = dict(request.params.items())
        if not overrides:
            return source_url

        parts = urlsplit(source_url)
        query: list[tuple[str, str]] = []
        seen: set[str] = set()
        for key, value in parse_qsl(parts.query, keep_blank_values=True):
            if key in overrides:
                if key in seen:
                    continue
                seen.add(key)
                value = overrides[key]
            query.append((key, value))
        query.extend((key, value) for key, value in overrides.items() if key not in seen)

        return urlunsplit(parts._replace(query=urlencode(query)))

    def fetch_image(self, url: str) -> UpstreamImage:
        """Fetch an image from the upstream host.

        Upstream status codes are inspected rather than raised. The body is
        read raw, so it is returned exactly as sent together with any
        ``Content-Encoding``. ``Accept-Encoding: identity`` asks upstream not
        to compress it in the first place.

        Raises:
            UpstreamNotFoundException: Upstream returned 404
            ExternalServiceException: Upstream returned another non-2xx status,
                timed out, or failed at the network level
        """
        fetch_start = time.perf_counter()
        try:
            with httpx.Client(timeout=self.fetch_timeout) as client:
                with client.stream(
                    "GET",
                    url,
                    headers={"Accept-Encoding": "identity"},
                    follow_redirects=False,
                ) as response:
                    if response.status_code == 404:
                        logger.info("Upstream image not found: %s", url)
                        raise UpstreamNotFoundException("fetch image")
                    if not 200 <= response.status_code < 300:
                        logger.error(
                            "Upstream returned HTTP %d for %s", response.status_code, url
                        )
                        raise ExternalServiceException(
                            "fetch image", f"HTTP {response.status_code}"
                        )

                    image_data = b"".join(response.iter_raw())
                    headers = response.headers
        except httpx.TimeoutException as e:
            logger.error("Upstream image fetch timeout: %s", e)
            raise ExternalServiceException(
                "fetch image", f"request timeout after {self.fetch_timeout:g} seconds"
            ) from e
        except httpx.RequestError as e:
            logger.error("Upstream image request failed: %s", e)
            raise ExternalServiceException(
                "fetch image", f"network error: {str(e)}"
            ) from e

        fetch_duration = time.perf_counter() - fetch_start

        logger.info(
            "Fetched image from %s (size: %d bytes, duration: %.3fs)",
            url,
            len(image_data),
            fetch_duration,
        )
        record_media_proxy_operation(
            status=None,
            error_type=None,
            fetch_duration=fetch_duration,
            image_size=len(image_data),
        )

        return UpstreamImage(
            content=image_data,
            content_type=headers.get("content-type") or "application/octet-stream",
            content_length=headers.get("content-length"),
            content_encoding=headers.get("content-encoding"),
        )
