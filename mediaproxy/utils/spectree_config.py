"""OpenAPI documentation for the media proxy, served at /api/docs."""

from typing import Any

from flask import Flask, redirect
from spectree import SpecTree

# Decorates endpoints at import time; create_app configures it before the API
# blueprints are imported
api: SpecTree = None  # type: ignore


def configure_spectree(app: Flask) -> SpecTree:
    """Create the SpecTree instance and mount the Swagger UI under /api/docs.

    Request validation stays in the endpoints; the media endpoint only declares
    its error responses so the docs list them.
    """
    global api

    api = SpecTree(
        backend_name="flask",
        title="Media Proxy API",
        version="1.0.0",
        description="Signed, encrypted first-party proxy for allow-listed image hosts",
        path="api/docs",
        validation_error_status=400,
    )

    api.register(app)

    @app.route("/api/docs")
    @app.route("/api/docs/")
    def docs_redirect() -> Any:
        return redirect("/api/docs/swagger/", code=302)

    return api
