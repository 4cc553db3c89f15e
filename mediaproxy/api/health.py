"""Health check endpoints for Kubernetes probes."""

from typing import Any

from flask import Blueprint, jsonify

health_bp = Blueprint("health", __name__, url_prefix="/health")


@health_bp.route("", methods=["GET"])
def health_check() -> Any:
    """Health check endpoint for Kubernetes probes.

    The proxy keeps no connections open, so being able to answer is healthy.
    """
    return jsonify({"status": "healthy"}), 200
