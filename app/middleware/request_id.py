"""
Request ID middleware binding each request into the logging flow context.
"""

import logging
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from sso_gateway.utils.logging import clear_flow_context, set_flow_context

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request for tracing.

    The request ID is:
    - Generated for each incoming request (or taken from X-Request-ID when trusted)
    - Bound to the logging flow context for the duration of the request
    - Added to the response headers for client-side correlation
    """

    REQUEST_ID_HEADER = "X-Request-ID"

    def __init__(self, app, trust_incoming_id: bool = False):
        super().__init__(app)
        self.trust_incoming_id = trust_incoming_id

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = None
        if self.trust_incoming_id:
            request_id = request.headers.get(self.REQUEST_ID_HEADER)
        if not request_id:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        set_flow_context(request_id=request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path} "
                f"[{self.REQUEST_ID_HEADER}: {request_id}] - {e}"
            )
            raise
        finally:
            clear_flow_context()

        response.headers[self.REQUEST_ID_HEADER] = request_id
        return response
