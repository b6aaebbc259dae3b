from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

MAX_BODY_SIZE = 1_048_576  # 1 MiB


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared body exceeds ``max_body_size`` bytes."""

    def __init__(self, app, max_body_size: int = MAX_BODY_SIZE):
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > self.max_body_size
            except ValueError:
                return JSONResponse({"error": "Invalid Content-Length"}, status_code=400)
            if too_large:
                return JSONResponse({"error": "Payload too large"}, status_code=413)
        return await call_next(request)
