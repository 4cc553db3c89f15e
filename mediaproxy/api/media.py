"""Media proxy API endpoint."""

import logging
import time
from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint, Response, request
from spectree import Response as SpectreeResponse

from mediaproxy.consts import MEDIA_CACHE_CONTROL
from mediaproxy.exceptions import (
    AuthenticationException,
    ExternalServiceException,
    ProcessingException,
    UpstreamNotFoundException,
)
from mediaproxy.schemas.error import ErrorResponseSchema
from mediaproxy.services.container import ServiceContainer
from mediaproxy.services.media_proxy_service import (
    MediaProxyService,
    ProxyQueryRejected,
    record_media_proxy_operation,
)
from mediaproxy.utils.error_handling import build_error_response, handle_api_errors
from mediaproxy.utils.spectree_config import api

logger = logging.getLogger(__name__)

media_bp = Blueprint("media", __name__, url_prefix="/media")

# Every method is routed here so non-GET requests get a JSON 405 from the view
_ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@media_bp.route("", methods=_ROUTED_METHODS)
@api.validate(
    resp=SpectreeResponse(
        HTTP_200=None,  # Binary response, no schema
        HTTP_400=ErrorResponseSchema,
        HTTP_403=ErrorResponseSchema,
        HTTP_404=ErrorResponseSchema,
        HTTP_405=ErrorResponseSchema,
        HTTP_502=ErrorResponseSchema,
    ),
    skip_validation=True,
)
@handle_api_errors
@inject
def get_media(
    media_proxy_service: MediaProxyService = Provide[
        ServiceContainer.media_proxy_service
    ],
) -> Any:
    """Serve an allow-listed upstream image through a signed first-party URL.

    Query Parameters:
        u: Encrypted upstream image URL
        w, h, q, fit: Optional transform parameters forwarded upstream
        sig: HMAC-SHA256 signature of the canonical query

    Returns:
        The upstream image bytes with long-lived shared cache headers
    """
    if request.method != "GET":
        response, status_code = build_error_response("Method Not Allowed", 405)
        response.headers["Allow"] = "GET"
        return response, status_code

    start_time = time.perf_counter()
    status = "success"
    error_type = "none"

    try:
        parsed = media_proxy_service.parse_query(request.args)
        if isinstance(parsed, ProxyQueryRejected):
            status = "error"
            error_type = "forbidden_host" if parsed.status == 403 else "invalid_query"
            logger.warning(
                "Rejected media request (%d): %s", parsed.status, parsed.message
            )
            return build_error_response(parsed.message, parsed.status)

        if not media_proxy_service.verify_signature(parsed.params):
            error_type = "invalid_signature"
            raise AuthenticationException("invalid signature")

        upstream_url = media_proxy_service.build_upstream_url(parsed.params)
        image = media_proxy_service.fetch_image(upstream_url)

        response = Response(image.content, status=200, content_type=image.content_type)
        response.headers["Cache-Control"] = MEDIA_CACHE_CONTROL
        response.headers["X-Content-Type-Options"] = "nosniff"
        if image.content_length:
            response.headers["Content-Length"] = image.content_length
        if image.content_encoding:
            response.headers["Content-Encoding"] = image.content_encoding

        return response

    except AuthenticationException:
        status = "error"
        raise

    except UpstreamNotFoundException:
        status = "error"
        error_type = "upstream_not_found"
        raise

    except ExternalServiceException:
        status = "error"
        error_type = "upstream_fetch_failed"
        raise

    except ProcessingException:
        status = "error"
        error_type = "resolve_failed"
        raise

    except Exception:
        status = "error"
        if error_type == "none":
            error_type = "unknown"
        raise

    finally:
        duration = time.perf_counter() - start_time
        record_media_proxy_operation(
            status=status,
            error_type=error_type,
            operation_duration=duration,
        )
