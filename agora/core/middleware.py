from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from agora.core.cache import get_redis_client
from agora.core.config import settings
from agora.services.logger import logger


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers"""

    async def dispatch(self, request: Request, call_next):

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Admin keys travel in query strings; keep them out of caches
        if "key" in request.query_params:
            response.headers["Cache-Control"] = "no-store"

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP, per-endpoint fixed window rate limiting backed by Redis"""

    def __init__(self, app, calls: int = None, period: int = 60):
        super().__init__(app)
        default_calls = calls or int(settings.RATE_LIMIT_PER_MINUTE)
        # Writes get tighter limits than reads
        self.method_limits = {
            "POST": {"calls": max(default_calls // 5, 1), "period": period},
            "DELETE": {"calls": max(default_calls // 5, 1), "period": period},
            "default": {"calls": default_calls, "period": period},
        }

    async def dispatch(self, request: Request, call_next):
        redis = get_redis_client()
        if redis is None:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        endpoint = request.url.path
        limit_config = self.method_limits.get(
            request.method, self.method_limits["default"]
        )
        calls = limit_config["calls"]
        period = limit_config["period"]

        key = f"rate_limit:{client_ip}:{request.method}:{endpoint}"

        try:
            current = redis.get(key)
            if current is None:
                redis.setex(key, period, 1)
            elif int(current) >= calls:
                return JSONResponse(
                    status_code=429,
                    content={
                        "detail": f"Rate limit exceeded. Max {calls} requests per {period} seconds for this endpoint."
                    },
                )
            else:
                redis.incr(key)
        except Exception as e:
            # If Redis fails, skip rate limiting (don't block requests)
            logger.warning(f"RateLimitMiddleware skipped: {e}")

        return await call_next(request)
