"""Tests for MediaProxyService."""

import gzip
from collections.abc import Callable
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from flask import Flask
from werkzeug.datastructures import MultiDict

from mediaproxy.exceptions import (
    ExternalServiceException,
    ProcessingException,
    UpstreamNotFoundException,
)
from mediaproxy.services.container import ServiceContainer
from mediaproxy.services.media_proxy_service import (
    MediaProxyService,
    ProxyQueryAccepted,
    ProxyQueryRejected,
)
from mediaproxy.utils.media_params import TransformParams, UnsignedProxyRequest


def _query(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


class TestParseQuery:
    """Tests for MediaProxyService.parse_query."""

    @pytest.fixture
    def service(self, app: Flask, container: ServiceContainer) -> MediaProxyService:
        return container.media_proxy_service()

    @pytest.fixture
    def signed_query(self, container: ServiceContainer, source_url: str) -> dict[str, str]:
        signer = container.media_signer_service()
        return _query(
            signer.build_signed_url(source_url, {"w": 600, "h": 400, "q": 60, "fit": "crop"})
        )

    def test_round_trip_accepts_and_verifies(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        result = service.parse_query(signed_query)

        assert isinstance(result, ProxyQueryAccepted)
        assert result.ok is True
        assert result.params.params == TransformParams(w=600, h=400, q=60, fit="crop")
        assert service.verify_signature(result.params)

    def test_accepts_multidict(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        result = service.parse_query(MultiDict(signed_query))

        assert isinstance(result, ProxyQueryAccepted)

    def test_uses_first_value_of_repeated_keys(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        query = MultiDict(signed_query)
        query.add("w", "9999")

        result = service.parse_query(query)

        assert isinstance(result, ProxyQueryAccepted)
        assert result.params.params.w == 600

    def test_list_values_use_first(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        query = {key: [value] for key, value in signed_query.items()}

        result = service.parse_query(query)

        assert isinstance(result, ProxyQueryAccepted)

    def test_uppercase_sig_normalized(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        signed_query["sig"] = signed_query["sig"].upper()

        result = service.parse_query(signed_query)

        assert isinstance(result, ProxyQueryAccepted)
        assert result.params.sig == result.params.sig.lower()
        assert service.verify_signature(result.params)

    def test_unknown_key_rejected_before_decrypt(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        service.cipher = MagicMock()
        signed_query["evil"] = "1"

        result = service.parse_query(signed_query)

        assert result == ProxyQueryRejected(400, "invalid query keys")
        service.cipher.decrypt.assert_not_called()

    def test_missing_u(self, service: MediaProxyService, signed_query: dict[str, str]):
        del signed_query["u"]

        assert service.parse_query(signed_query) == ProxyQueryRejected(400, "u is required")

    def test_empty_u(self, service: MediaProxyService, signed_query: dict[str, str]):
        signed_query["u"] = ""

        assert service.parse_query(signed_query) == ProxyQueryRejected(400, "u is required")

    def test_undecryptable_u(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        token = signed_query["u"]
        replacement = "A" if token[40] != "A" else "B"
        signed_query["u"] = token[:40] + replacement + token[41:]

        assert service.parse_query(signed_query) == ProxyQueryRejected(400, "u is invalid")

    def test_disallowed_host_is_forbidden(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        """A validly encrypted but disallowed URL is 403, not 400."""
        signed_query["u"] = service.cipher.encrypt("https://evil.example.com/a.png")

        assert service.parse_query(signed_query) == ProxyQueryRejected(
            403, "u host is not allowed"
        )

    @pytest.mark.parametrize("sig", [None, "", "abc", "g" * 64, "a" * 65])
    def test_invalid_sig(
        self, service: MediaProxyService, signed_query: dict[str, str], sig: str | None
    ):
        if sig is None:
            del signed_query["sig"]
        else:
            signed_query["sig"] = sig

        assert service.parse_query(signed_query) == ProxyQueryRejected(400, "sig is invalid")

    @pytest.mark.parametrize(
        "key,value,message",
        [
            ("w", "0", "w must be between 1 and 2000"),
            ("w", "2001", "w must be between 1 and 2000"),
            ("h", "abc", "h must be an integer"),
            ("q", "39", "q must be between 40 and 85"),
            ("q", "86", "q must be between 40 and 85"),
            ("fit", "banana", "fit is invalid"),
            ("fit", "", "fit is invalid"),
        ],
    )
    def test_invalid_transform_params(
        self,
        service: MediaProxyService,
        signed_query: dict[str, str],
        key: str,
        value: str,
        message: str,
    ):
        signed_query[key] = value

        assert service.parse_query(signed_query) == ProxyQueryRejected(400, message)

    @pytest.mark.parametrize(
        "key,message",
        [
            ("w", "w must be between 1 and 2000"),
            ("h", "h must be between 1 and 2000"),
            ("q", "q must be between 40 and 85"),
        ],
    )
    def test_very_long_digit_string_is_rejected(
        self,
        service: MediaProxyService,
        signed_query: dict[str, str],
        key: str,
        message: str,
    ):
        signed_query[key] = "1" * 5000

        assert service.parse_query(signed_query) == ProxyQueryRejected(400, message)

    def test_empty_numeric_param_is_absent(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        signed_query["w"] = ""

        result = service.parse_query(signed_query)

        assert isinstance(result, ProxyQueryAccepted)
        assert result.params.params.w is None
        # w was part of the signed canonical string
        assert not service.verify_signature(result.params)

    def test_tampered_param_parses_but_fails_verification(
        self, service: MediaProxyService, signed_query: dict[str, str]
    ):
        signed_query["w"] = "601"

        result = service.parse_query(signed_query)

        assert isinstance(result, ProxyQueryAccepted)
        assert not service.verify_signature(result.params)


class TestBuildUpstreamUrl:
    """Tests for MediaProxyService.build_upstream_url."""

    @pytest.fixture
    def service(self, app: Flask, container: ServiceContainer) -> MediaProxyService:
        return container.media_proxy_service()

    def test_appends_params_in_canonical_order(
        self, service: MediaProxyService, source_url: str
    ):
        request = UnsignedProxyRequest(
            u=service.cipher.encrypt(source_url),
            params=TransformParams(w=600, h=400, q=60, fit="crop"),
        )

        assert service.build_upstream_url(request) == (
            "https://images.microcms-assets.io/assets/a.png?w=600&h=400&q=60&fit=crop"
        )

    def test_no_params_returns_source(self, service: MediaProxyService, source_url: str):
        request = UnsignedProxyRequest(u=service.cipher.encrypt(source_url))

        assert service.build_upstream_url(request) == source_url

    def test_overwrites_existing_params(self, service: MediaProxyService):
        source = "https://images.microcms.io/a.png?w=10&format=webp&w=20"
        request = UnsignedProxyRequest(
            u=service.cipher.encrypt(source), params=TransformParams(w=300, q=50)
        )

        assert service.build_upstream_url(request) == (
            "https://images.microcms.io/a.png?w=300&format=webp&q=50"
        )

    def test_disallowed_host_is_broken_invariant(self, service: MediaProxyService):
        request = UnsignedProxyRequest(
            u=service.cipher.encrypt("https://evil.example.com/a.png")
        )

        with pytest.raises(ProcessingException):
            service.build_upstream_url(request)

    def test_invalid_token_is_broken_invariant(self, service: MediaProxyService):
        with pytest.raises(ProcessingException):
            service.build_upstream_url(UnsignedProxyRequest(u="garbage"))


class TestFetchImage:
    """Tests for MediaProxyService.fetch_image."""

    @pytest.fixture
    def service(self, app: Flask, container: ServiceContainer) -> MediaProxyService:
        return container.media_proxy_service()

    def test_fetch_success(self, service: MediaProxyService, mock_upstream: MagicMock):
        image = service.fetch_image("https://images.microcms.io/a.png?w=10")

        assert image.content == b"\x89PNG\r\n\x1a\nimage-bytes"
        assert image.content_type == "image/png"
        assert image.content_length == "19"
        assert image.content_encoding is None

        call_args = mock_upstream.stream.call_args
        assert call_args[0] == ("GET", "https://images.microcms.io/a.png?w=10")
        assert call_args[1]["headers"]["Accept-Encoding"] == "identity"
        assert call_args[1]["follow_redirects"] is False

    def test_uses_fixed_timeout(self, service: MediaProxyService, mock_upstream: MagicMock):
        with patch("httpx.Client") as mock_client:
            mock_client.return_value.__enter__.return_value = mock_upstream
            service.fetch_image("https://images.microcms.io/a.png")

            assert mock_client.call_args[1]["timeout"] == 10.0

    def test_default_content_type(
        self, service: MediaProxyService, respond_upstream: Callable[..., httpx.Response]
    ):
        respond_upstream(200, b"raw")

        image = service.fetch_image("https://images.microcms.io/a.bin")

        assert image.content_type == "application/octet-stream"

    def test_encoded_body_passed_through_unmodified(
        self, service: MediaProxyService, respond_upstream: Callable[..., httpx.Response]
    ):
        """An upstream that compresses anyway has its bytes forwarded as sent."""
        compressed = gzip.compress(b"x" * 1000)
        respond_upstream(
            200,
            compressed,
            {"content-type": "image/svg+xml", "content-encoding": "gzip"},
        )

        image = service.fetch_image("https://images.microcms.io/a.svg")

        assert image.content == compressed
        assert image.content_encoding == "gzip"

    def test_upstream_404(
        self, service: MediaProxyService, respond_upstream: Callable[..., httpx.Response]
    ):
        respond_upstream(404, b"missing")

        with pytest.raises(UpstreamNotFoundException):
            service.fetch_image("https://images.microcms.io/missing.png")

    @pytest.mark.parametrize("status_code", [302, 400, 403, 500, 503])
    def test_upstream_error_status(
        self,
        service: MediaProxyService,
        respond_upstream: Callable[..., httpx.Response],
        status_code: int,
    ):
        respond_upstream(status_code)

        with pytest.raises(ExternalServiceException) as exc_info:
            service.fetch_image("https://images.microcms.io/a.png")

        assert str(status_code) in exc_info.value.cause
        assert exc_info.value.message == "failed to fetch image"

    def test_upstream_timeout(self, service: MediaProxyService, mock_upstream: MagicMock):
        mock_upstream.stream.side_effect = httpx.TimeoutException("Request timeout")

        with pytest.raises(ExternalServiceException) as exc_info:
            service.fetch_image("https://images.microcms.io/slow.png")

        assert "timeout" in exc_info.value.cause.lower()

    def test_network_error(self, service: MediaProxyService, mock_upstream: MagicMock):
        mock_upstream.stream.side_effect = httpx.RequestError("Connection failed")

        with pytest.raises(ExternalServiceException) as exc_info:
            service.fetch_image("https://images.microcms.io/a.png")

        assert "network error" in exc_info.value.cause.lower()
