import logging
import signal
import sys
import time
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from config import MAX_CONTENT_LENGTH, TunnelConfig
from tunnel.bootstrap import start_service
from tunnel.errors import BootstrapError, ConfigError
from tunnel.routes import bp as tunnel_bp
from tunnel.routes import not_found_response
from tunnel.service import TunnelService

# EWOT: This app is a thin HTTP tunnel in front of the airport operations
# database. The desktop UI posts SQL (raw or with ? params) to /api/* and gets
# rows back as JSON; /health is polled for the status bar.

# Load environment variables (DB_HOST, DB_USER, ... from .env)
load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def create_app(service: Optional[TunnelService] = None) -> Flask:
    """Build the Flask app around ``service``.

    Without a service the routes still answer, but every database operation
    reports the pool as not initialized (503).
    """

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_CONTENT_LENGTH
    app.extensions["tunnel"] = service or TunnelService()

    config = app.extensions["tunnel"].config
    frontend_origin = config.frontend_origin if config else "*"
    expose_errors = config.expose_errors if config else False

    app.register_blueprint(tunnel_bp)

    @app.before_request
    def _track_start_time():
        # Track per-request start time for logging.
        g.start_time = time.monotonic()

    @app.after_request
    def add_cors_headers(resp):
        resp.headers["Access-Control-Allow-Origin"] = frontend_origin
        resp.headers["Vary"] = "Origin"
        resp.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        return resp

    @app.after_request
    def _log_request(response):  # noqa: D401 - simple logger
        """Log method, path, status, duration, origin and client address."""

        duration_ms = int((time.monotonic() - getattr(g, "start_time", time.monotonic())) * 1000)
        origin = request.headers.get("Origin") or request.headers.get("Referer") or "unknown"
        app.logger.info(
            "%s %s -> %s (%sms) | Origin: %s | IP: %s",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
            origin,
            request.remote_addr or "unknown",
        )
        return response

    @app.errorhandler(404)
    @app.errorhandler(405)
    def _not_found(_exc):
        return not_found_response()

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return (
            jsonify(
                {
                    "success": False,
                    "error": exc.name,
                    "message": exc.description,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            ),
            exc.code or 500,
        )

    @app.errorhandler(Exception)
    def _unexpected_error(exc: Exception):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Internal Server Error",
                    "message": str(exc) if expose_errors else "An unexpected error occurred",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            ),
            500,
        )

    return app


def _install_shutdown_handlers(service: TunnelService) -> None:
    def _shutdown(signum, _frame):
        logging.getLogger(__name__).info("%s received, shutting down gracefully...", signal.Signals(signum).name)
        service.close()
        sys.exit(0)

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)


def main() -> int:
    """Validate config, bootstrap the pool and serve until interrupted."""

    logger = logging.getLogger(__name__)
    try:
        config = TunnelConfig.from_env()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error("ERROR: %s", exc)
        logger.error("Please check your .env file and ensure all required variables are set.")
        return 1

    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

    try:
        service = start_service(config)
    except BootstrapError as exc:
        logger.error("ERROR: %s", exc)
        return 1

    app = create_app(service)
    _install_shutdown_handlers(service)

    logger.info("Database Tunnel Server is running on port %s", config.server_port)
    logger.info("API endpoint: http://%s:%s/api/query", config.server_host, config.server_port)
    logger.info("Health check: http://%s:%s/health", config.server_host, config.server_port)
    app.run(host=config.server_host, port=config.server_port, threaded=True)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
