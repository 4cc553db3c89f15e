"""Flask application factory for the media proxy."""

import logging

from flask_cors import CORS

from mediaproxy.app import App
from mediaproxy.config import Settings
from mediaproxy.services.container import ServiceContainer


def create_app(settings: Settings | None = None) -> App:
    """Create and configure Flask application.

    Raises:
        ConfigurationError: If required settings (the proxy secret) are missing
    """
    app = App(__name__)

    # Load configuration
    if settings is None:
        settings = Settings.load()

    # Refuse to start without a usable secret
    settings.validate_config()

    app.config.from_object(settings.to_flask_config())

    # Initialize SpecTree for OpenAPI docs
    from mediaproxy.utils.spectree_config import configure_spectree

    configure_spectree(app)

    # Initialize service container
    container = ServiceContainer()
    container.config.override(settings)

    # Wire container with API modules
    wire_modules = [
        "mediaproxy.api.media",
    ]

    container.wire(modules=wire_modules)

    app.container = container

    # Configure CORS
    CORS(app, origins=settings.cors_origins)

    # Configure logging
    debug_mode = settings.flask_env in ("development", "testing")
    logging.basicConfig(
        level=logging.DEBUG if debug_mode else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Register main API blueprint
    from mediaproxy.api import api_bp

    app.register_blueprint(api_bp)

    # Register metrics blueprint (at root, not under /api)
    from mediaproxy.api.metrics import metrics_bp

    app.register_blueprint(metrics_bp)

    return app
