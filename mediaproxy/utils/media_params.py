"""Transform parameters, canonical query strings and the upstream host allow-list."""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode, urlsplit

from mediaproxy.consts import (
    ALLOWED_FITS,
    ALLOWED_IMAGE_HOSTS,
    ALLOWED_QUERY_KEYS,
    MAX_DIMENSION,
    MAX_QUALITY,
    MIN_DIMENSION,
    MIN_QUALITY,
)
from mediaproxy.exceptions import ValidationException

_UNSIGNED_INTEGER_RE = re.compile(r"[0-9]+")

# Bounds for the numeric transform parameters, in canonical order
NUMERIC_PARAM_RANGES: dict[str, tuple[int, int]] = {
    "w": (MIN_DIMENSION, MAX_DIMENSION),
    "h": (MIN_DIMENSION, MAX_DIMENSION),
    "q": (MIN_QUALITY, MAX_QUALITY),
}


@dataclass(frozen=True)
class TransformParams:
    """Resize/quality hints forwarded to the upstream image host."""

    w: int | None = None
    h: int | None = None
    q: int | None = None
    fit: str | None = None

    def items(self) -> list[tuple[str, str]]:
        """Present parameters as string pairs in canonical order."""
        pairs: list[tuple[str, str]] = []
        for key in ("w", "h", "q", "fit"):
            value = getattr(self, key)
            if value is not None:
                pairs.append((key, str(value)))
        return pairs


@dataclass(frozen=True)
class UnsignedProxyRequest:
    """Encrypted source token plus transform parameters."""

    u: str
    params: TransformParams = TransformParams()

    def canonical(self) -> str:
        """Serialize as the exact byte sequence that gets signed."""
        return urlencode([("u", self.u), *self.params.items()])


@dataclass(frozen=True)
class SignedProxyRequest(UnsignedProxyRequest):
    """An unsigned request plus its lowercase hex HMAC-SHA256 signature."""

    sig: str = ""

    def unsigned(self) -> UnsignedProxyRequest:
        return UnsignedProxyRequest(u=self.u, params=self.params)

    def query_string(self) -> str:
        return urlencode([("u", self.u), *self.params.items(), ("sig", self.sig)])


def parse_int_in_range(
    raw: str | None, key: str, minimum: int, maximum: int
) -> int | None:
    """Parse an unsigned integer query value and check its bounds.

    Empty or missing values are treated as absent.

    Raises:
        ValidationException: If the value is not an integer or out of range
    """
    if raw is None or raw == "":
        return None
    if not _UNSIGNED_INTEGER_RE.fullmatch(raw):
        raise ValidationException(f"{key} must be an integer")
    # Compare digit counts first; int() refuses very long digit strings
    if len(raw.lstrip("0")) > len(str(maximum)):
        raise ValidationException(f"{key} must be between {minimum} and {maximum}")
    value = int(raw)
    if value < minimum or value > maximum:
        raise ValidationException(f"{key} must be between {minimum} and {maximum}")
    return value


def parse_fit(raw: str | None) -> str | None:
    if raw is None:
        return None
    if raw not in ALLOWED_FITS:
        raise ValidationException("fit is invalid")
    return raw


def _stringify(key: str, value: Any, minimum: int, maximum: int) -> str:
    # bool is an int subclass but never a valid dimension
    if isinstance(value, bool):
        raise ValidationException(f"{key} must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and not minimum <= value <= maximum:
        raise ValidationException(f"{key} must be between {minimum} and {maximum}")
    return str(value)


def normalize_transform_params(
    params: TransformParams | Mapping[str, Any] | None,
) -> TransformParams:
    """Validate caller-supplied transform parameters.

    Accepts either a ``TransformParams`` or a plain mapping with ``w``, ``h``,
    ``q`` and ``fit`` keys. Unknown keys and invalid values are rejected.

    Raises:
        ValidationException: If any parameter is invalid
    """
    if params is None:
        return TransformParams()
    if isinstance(params, TransformParams):
        values: dict[str, Any] = {
            "w": params.w,
            "h": params.h,
            "q": params.q,
            "fit": params.fit,
        }
    else:
        unknown = set(params) - {"w", "h", "q", "fit"}
        if unknown:
            raise ValidationException(
                f"unknown transform parameters: {', '.join(sorted(unknown))}"
            )
        values = dict(params)

    normalized: dict[str, Any] = {}
    for key, (minimum, maximum) in NUMERIC_PARAM_RANGES.items():
        value = values.get(key)
        if value is not None:
            normalized[key] = parse_int_in_range(
                _stringify(key, value, minimum, maximum), key, minimum, maximum
            )

    fit = values.get("fit")
    if fit is not None:
        normalized["fit"] = parse_fit(str(fit))

    return TransformParams(**normalized)


def has_only_allowed_query_keys(keys: Iterable[str]) -> bool:
    return all(key in ALLOWED_QUERY_KEYS for key in keys)


def is_allowed_media_url(url: str) -> bool:
    """Check that a URL is https and points at an allow-listed image host."""
    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
    except ValueError:
        return False
    if parsed.scheme.lower() != "https" or not hostname:
        return False
    return hostname.lower() in ALLOWED_IMAGE_HOSTS
