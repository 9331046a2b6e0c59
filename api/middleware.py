import logging
import time
import uuid

from flask import g, request

logger = logging.getLogger("api.requests")


def register_request_logging(app):
    """
    Request-scoped context:
    - reuse X-Request-ID if the client sent one, otherwise mint one
    - log method, path, status and duration once the response is ready
    """

    @app.before_request
    def _start_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response):
        started = getattr(g, "request_started", None)
        elapsed_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        response.headers.setdefault("X-Request-ID", getattr(g, "request_id", ""))
        logger.info(
            "%s %s -> %s (%.1f ms) request_id=%s",
            request.method,
            request.path,
            response.status_code,
            elapsed_ms,
            getattr(g, "request_id", None),
        )
        return response
