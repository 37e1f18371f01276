import logging
import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from tutor.core.logging import latency_bucket_ms, request_id_ctx_var

logger = logging.getLogger("nst")

_CLIENT_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an id and log one line when it completes.

    A well-formed client id is reused so app and server logs correlate;
    anything else is replaced with a fresh uuid.
    """

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    def _request_id(self, request) -> str:
        incoming = request.headers.get(self.header_name, "")
        return incoming if _CLIENT_ID_RE.match(incoming) else uuid4().hex

    async def dispatch(self, request, call_next):
        rid = self._request_id(request)
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)

        response.headers[self.header_name] = rid
        logger.info(
            "request.complete",
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "user_id": request.headers.get("x-user-id"),
                "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
            },
        )
        return response
