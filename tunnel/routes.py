"""HTTP routes for the tunnel: health, raw query and parameterized query."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request

from tunnel.errors import classify_error, driver_message, error_payload
from tunnel.service import PlaceholderMismatch, TunnelService
from tunnel.validation import validate_query_body

logger = logging.getLogger(__name__)

bp = Blueprint("tunnel", __name__)

AVAILABLE_ENDPOINTS = [
    "GET /health",
    "POST /api/query",
    "POST /api/query-safe",
]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_service() -> TunnelService:
    return current_app.extensions["tunnel"]


def _bad_request(message: str, request_id: int):
    logger.warning("[%s] Invalid request: %s", request_id, message)
    return (
        jsonify(
            {
                "success": False,
                "error": "Bad Request",
                "message": message,
                "requestId": request_id,
                "timestamp": _timestamp(),
            }
        ),
        400,
    )


def _database_error(service: TunnelService, exc: Exception, request_id: int):
    classified = classify_error(exc)
    logger.error("[%s] Database Error (%s): %s", request_id, classified.code, classified.driver_message)

    config = service.config
    payload: Dict[str, Any] = error_payload(
        classified,
        request_id=request_id,
        host=config.db_host if config else "",
        port=config.db_port if config else "",
        database=config.db_name if config else "",
        expose_errors=config.expose_errors if config else False,
    )
    payload["timestamp"] = _timestamp()
    return jsonify(payload), classified.status


def _query_ok(result, request_id: int):
    logger.info("[%s] Query executed successfully. Rows affected/returned: %s", request_id, result.row_count)
    return (
        jsonify(
            {
                "success": True,
                "data": result.data,
                "message": "Query executed successfully",
                "rowCount": result.row_count,
                "requestId": request_id,
                "timestamp": _timestamp(),
            }
        ),
        200,
    )


def _handle_query(with_params: bool):
    service = get_service()
    request_id = service.next_request_id()
    logger.info(
        "[%s] Incoming %s request",
        request_id,
        "parameterized query" if with_params else "query",
    )

    body: Optional[Any] = request.get_json(silent=True)
    parsed, error = validate_query_body(body, with_params=with_params)
    if error:
        return _bad_request(error, request_id)

    try:
        if with_params:
            result = service.run_parameterized(parsed.query, parsed.params, request_id=request_id)
        else:
            result = service.run_query(parsed.query, request_id=request_id)
    except PlaceholderMismatch as exc:
        return _bad_request(str(exc), request_id)
    except Exception as exc:  # noqa: BLE001
        return _database_error(service, exc, request_id)

    return _query_ok(result, request_id)


@bp.get("/health")
def health():
    """Ping one pooled connection; no retries, the UI polls on its own."""

    service = get_service()
    if not service.ready:
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Database pool not initialized",
                    "message": "Database connection pool not initialized",
                    "timestamp": _timestamp(),
                }
            ),
            503,
        )

    try:
        service.ping()
    except Exception as exc:  # noqa: BLE001
        logger.error("Health Check Error: %s", driver_message(exc))
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Database connection unhealthy",
                    "message": driver_message(exc),
                    "timestamp": _timestamp(),
                }
            ),
            503,
        )

    return (
        jsonify(
            {
                "success": True,
                "message": "Server and database connection are healthy",
                "timestamp": _timestamp(),
            }
        ),
        200,
    )


@bp.post("/api/query")
def api_query():
    return _handle_query(with_params=False)


@bp.post("/api/query-safe")
def api_query_safe():
    return _handle_query(with_params=True)


@bp.route("/api/<path:_any>", methods=["OPTIONS"])
def cors_preflight(_any):
    return ("", 204)


def not_found_response():
    logger.warning("404 Not Found: %s %s", request.method, request.path)
    return (
        jsonify(
            {
                "success": False,
                "error": "Not Found",
                "message": f"Endpoint {request.method} {request.path} does not exist",
                "availableEndpoints": AVAILABLE_ENDPOINTS,
            }
        ),
        404,
    )
