"""Pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest
from flask import Flask

from mediaproxy import create_app
from mediaproxy.config import Settings
from mediaproxy.services.container import ServiceContainer

TEST_SECRET = "test-media-proxy-secret"


def _build_test_settings() -> Settings:
    """Construct base Settings object for tests."""
    return Settings(
        flask_env="testing",
        debug=True,
        media_proxy_secret=TEST_SECRET,
        site_url="https://www.example.com",
        cors_origins=["http://localhost:3000"],
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with a fixed proxy secret."""
    return _build_test_settings()


@pytest.fixture
def app(test_settings: Settings) -> Flask:
    """Create Flask app for testing."""
    return create_app(test_settings)


@pytest.fixture
def client(app: Flask) -> Any:
    """Create test client."""
    return app.test_client()


@pytest.fixture
def container(app: Flask) -> ServiceContainer:
    """Access to the DI container for testing."""
    return app.container


@pytest.fixture
def source_url() -> str:
    """Allow-listed upstream image URL."""
    return "https://images.microcms-assets.io/assets/a.png"


def _streamed_response(
    status_code: int, content: bytes = b"", headers: dict[str, str] | None = None
) -> httpx.Response:
    # An explicit stream keeps the body unread, as with client.stream()
    return httpx.Response(
        status_code, headers=headers, stream=httpx.ByteStream(content)
    )


@pytest.fixture
def mock_upstream() -> Generator[MagicMock, None, None]:
    """Patch httpx.Client and yield the client instance used for upstream fetches.

    Tests use ``respond_upstream`` (or set ``mock_upstream.stream.side_effect``)
    to control what the upstream image host answers.
    """
    with patch("httpx.Client") as mock_client:
        mock_client_instance = MagicMock()
        mock_client_instance.stream.return_value.__enter__.return_value = (
            _streamed_response(
                200,
                b"\x89PNG\r\n\x1a\nimage-bytes",
                {"content-type": "image/png", "content-length": "19"},
            )
        )
        mock_client.return_value.__enter__.return_value = mock_client_instance
        yield mock_client_instance


@pytest.fixture
def respond_upstream(
    mock_upstream: MagicMock,
) -> Callable[..., httpx.Response]:
    """Replace the upstream answer: ``respond_upstream(status, content, headers)``."""

    def respond(
        status_code: int, content: bytes = b"", headers: dict[str, str] | None = None
    ) -> httpx.Response:
        response = _streamed_response(status_code, content, headers)
        mock_upstream.stream.return_value.__enter__.return_value = response
        return response

    return respond
