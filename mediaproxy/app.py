"""Custom Flask application class."""

from flask import Flask

from mediaproxy.services.container import ServiceContainer


class App(Flask):
    """Custom Flask application with container reference."""

    container: ServiceContainer
