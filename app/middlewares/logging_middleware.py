import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.logging_config import LogContext, get_logger, log_api_access

logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle request/response logging and context management
    """

    def __init__(self, app: FastAPI, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        client_ip = request.client.host if request.client else None
        with LogContext(req_id=request_id):
            start_time = time.time()

            if self.log_requests:
                logger.info(
                    f"Incoming request: {request.method} {request.url.path}",
                    extra={
                        "extra_fields": {
                            "http_method": request.method,
                            "path": str(request.url.path),
                            "query_params": dict(request.query_params),
                            "client_ip": client_ip,
                            "action": "request_received",
                        }
                    },
                )

            try:
                response = await call_next(request)
            except Exception:
                logger.error(
                    f"Unhandled error: {request.method} {request.url.path}",
                    exc_info=True,
                )
                raise

            response_time = time.time() - start_time
            log_api_access(
                method=request.method,
                path=str(request.url.path),
                status_code=response.status_code,
                response_time=response_time,
                ip_address=client_ip,
            )
            response.headers["X-Request-ID"] = request_id
            return response
