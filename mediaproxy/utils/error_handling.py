"""Centralized error handling utilities."""

import functools
import logging
from collections.abc import Callable
from typing import Any

from flask import jsonify
from flask.wrappers import Response

from mediaproxy.exceptions import (
    AuthenticationException,
    AuthorizationException,
    BusinessLogicException,
    ExternalServiceException,
    ProcessingException,
    UpstreamNotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)


def build_error_response(message: str, status_code: int = 400) -> tuple[Response, int]:
    """Build the ``{"message": ...}`` JSON error body used by every endpoint."""
    return jsonify({"message": message}), status_code


def handle_api_errors(
    func: Callable[..., Any],
) -> Callable[..., Response | tuple[Response | str, int]]:
    """Decorator to handle common API errors consistently.

    Maps domain exceptions to HTTP status codes. Only user-ready messages
    reach the client; everything else is logged and reported as a generic
    internal error.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except BusinessLogicException as e:
            try:
                raise
            except ValidationException:
                logger.warning("Validation failed in %s: %s", func.__name__, e.message)
                return build_error_response(e.message, status_code=400)

            except (AuthenticationException, AuthorizationException):
                logger.warning("Request refused in %s: %s", func.__name__, e.message)
                return build_error_response(e.message, status_code=403)

            except UpstreamNotFoundException:
                return build_error_response(e.message, status_code=404)

            except ExternalServiceException as ext:
                # External service failure (HTTP 502 Bad Gateway)
                logger.error(
                    "External service failure in %s: %s (%s)",
                    func.__name__,
                    e.message,
                    ext.cause,
                )
                return build_error_response(e.message, status_code=502)

            except ProcessingException:
                logger.error(
                    "Processing failure in %s: %s", func.__name__, e.message, exc_info=True
                )
                return build_error_response("Internal server error", status_code=500)

            except BusinessLogicException:
                # Generic business logic exception (fallback for custom exceptions)
                logger.error("Business logic failure in %s: %s", func.__name__, e.message)
                return build_error_response(e.message, status_code=400)

        except Exception as e:
            logger.error("Exception in %s: %s", func.__name__, str(e), exc_info=True)
            return build_error_response("Internal server error", status_code=500)

    return wrapper
