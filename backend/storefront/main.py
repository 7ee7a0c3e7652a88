import logging
import sys
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from storefront.api import auth, products, reviews

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
from storefront.api.errors import register_exception_handlers
from storefront.config import settings
from storefront.core.cache import close_redis
from storefront.db.session import async_session_maker, init_db
from storefront.services.google_oauth import close_google_http, open_google_http
from storefront.services.refresh_tokens import purge_expired_refresh_tokens
from prometheus_client import make_asgi_app

logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler()


async def scheduled_refresh_token_purge():
    """Drop refresh-token rows whose expiry has passed."""
    async with async_session_maker() as session:
        await purge_expired_refresh_tokens(session)
        await session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.is_production:
        settings.validate_jwt_config()
    elif not settings.email_token_secret:
        logger.warning("EMAIL_TOKEN_SECRET is not set; verification and reset flows will fail")
    await init_db()
    open_google_http(timeout=15.0)

    scheduler.add_job(
        scheduled_refresh_token_purge,
        "interval",
        minutes=settings.refresh_token_purge_interval_minutes,
    )
    scheduler.start()
    yield
    scheduler.shutdown()
    await close_google_http()
    await close_redis()


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)

app = FastAPI(
    title="Storefront API",
    description="E-commerce backend: auth, sessions, product catalog, reviews",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=500)


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'self'",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        if settings.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-CSRF-Token", "X-XSRF-Token"],
    expose_headers=["XSRF-TOKEN"],
)
app.include_router(auth.router)
app.include_router(products.router)
app.include_router(reviews.router)

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/healthz")
@limiter.exempt
def health(request: Request):
    return {"message": "OK"}
