"""
Flask app for the engine admin API.

Creates the Flask application that exposes the engine's admin control
surface under /api/engine. The engine is built by the caller and
stored on the app; routes never construct their own.
"""

from __future__ import annotations

import logging

from flask import Flask

from falconwatch.core.engine.orchestrator import EnhancementEngine

logger = logging.getLogger(__name__)

API_PREFIX = "/api/engine"

# Admin capabilities the scanner expects to find registered.
EXPECTED_ROUTES = (
    f"{API_PREFIX}/status",
    f"{API_PREFIX}/health",
    f"{API_PREFIX}/audit",
    f"{API_PREFIX}/findings",
    f"{API_PREFIX}/users",
)


def create_app(engine: EnhancementEngine) -> Flask:
    """Create and configure the Flask application.

    Args:
        engine: The engine the admin routes control.

    Returns:
        The app, with the scanner's route probe attached to ``engine``.
    """
    app = Flask(__name__)
    app.config["ENGINE"] = engine
    app.json.sort_keys = False

    from falconwatch.ui.web.routes_engine import engine_bp

    app.register_blueprint(engine_bp, url_prefix=API_PREFIX)

    def route_probe() -> list[str]:
        registered = {rule.rule for rule in app.url_map.iter_rules()}
        return [route for route in EXPECTED_ROUTES if route not in registered]

    engine.attach_route_probe(route_probe)

    logger.info("Web admin app created")
    return app


def run_server(
    app: Flask,
    host: str = "127.0.0.1",
    port: int = 8000,
    debug: bool = False,
) -> None:
    """Serve ``app`` with the Flask development server (no reloader)."""
    logger.info("Engine admin API listening on http://%s:%d%s", host, port, API_PREFIX)
    app.run(host=host, port=port, debug=debug, use_reloader=False)
