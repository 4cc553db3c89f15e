"""API blueprints for the media proxy."""

from flask import Blueprint

# Create main API blueprint
api_bp = Blueprint("api", __name__, url_prefix="/api")


# Import and register all resource blueprints
# Note: Imports are done after api_bp creation to avoid circular imports
from mediaproxy.api.health import health_bp  # noqa: E402
from mediaproxy.api.media import media_bp  # noqa: E402

api_bp.register_blueprint(health_bp)  # type: ignore[attr-defined]
api_bp.register_blueprint(media_bp)  # type: ignore[attr-defined]
