"""Small requests-based client for the tunnel HTTP API.

Mirrors what the desktop UI does: pick the safe endpoint whenever params are
given, never raise on transport failures, and poll /health for status.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import requests
from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, wait_fixed

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = os.getenv("TUNNEL_SERVER_URL", "http://localhost:8888")
CANNOT_CONNECT = "Cannot connect to database server"


class TunnelClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or DEFAULT_SERVER_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def query_db(self, sql: str, params: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """POST ``sql`` to /api/query-safe (with params) or /api/query (without).

        Returns the response body when ``success`` is true, otherwise
        ``{"success": False, "error": <message>, "data": None}``.
        """

        if params is not None:
            endpoint, body = "/api/query-safe", {"query": sql, "params": list(params)}
        else:
            endpoint, body = "/api/query", {"query": sql}

        try:
            resp = self.session.post(self._url(endpoint), json=body, timeout=self.timeout)
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Database query error: %s", exc)
            return {"success": False, "error": str(exc), "data": None}

        if not isinstance(data, dict) or not data.get("success"):
            message = "Query failed"
            if isinstance(data, dict):
                message = data.get("message") or data.get("error") or message
            logger.error("Database query error: %s", message)
            return {"success": False, "error": message, "data": None}

        return data

    def check_db_status(self) -> Dict[str, Any]:
        try:
            resp = self.session.get(self._url("/health"), timeout=self.timeout)
            return resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Health check error: %s", exc)
            return {"success": False, "connected": False, "error": CANNOT_CONNECT}

    def select_query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        result = self.query_db(sql, params)
        return result["data"] if result.get("success") else []

    def mutation_query(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        result = self.query_db(sql, params)
        return int(result.get("rowCount") or 0) if result.get("success") else 0

    def is_healthy(self) -> bool:
        return bool(self.check_db_status().get("success"))

    def wait_until_healthy(self, attempts: int = 10, interval: float = 5.0) -> bool:
        """Poll /health until it reports success or ``attempts`` run out."""

        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(interval),
            retry=retry_if_result(lambda healthy: not healthy),
        )
        try:
            return retrying(self.is_healthy)
        except RetryError:
            return False
