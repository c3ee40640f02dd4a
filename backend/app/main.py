"""
Storefront Backend API
FastAPI application configured for production behind a TLS-terminating proxy.
"""

import logging
import re
import time
from typing import Optional
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from starlette.datastructures import URL
from starlette.responses import RedirectResponse

from app.config import Settings, load_settings
from app.logging_config import configure_logging, request_id_var
from app.services.cache import build_cache_store
from app.services.mailer import Mailer, delivery_method_name
from app.services.storage import S3StorageService, build_storage_service

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

_REQUEST_ID_UNSAFE = re.compile(r"[^\w\-@]")
_REQUEST_ID_MAX_LENGTH = 255


def sanitize_request_id(raw: Optional[str]) -> str:
    """Keep word characters, "-" and "@", capped at 255; generate an id when nothing is left."""
    cleaned = _REQUEST_ID_UNSAFE.sub("", raw or "")[:_REQUEST_ID_MAX_LENGTH]
    return cleaned or uuid4().hex


class SSLMiddleware:
    """
    SSL handling for an app served behind a proxy.

    assume_ssl  Treat every request as HTTPS (the proxy has terminated TLS).
    force_ssl   Redirect plain HTTP to HTTPS and send Strict-Transport-Security.

    The health-check path is never redirected so load balancers can probe
    over plain HTTP.
    """

    def __init__(self, app, force_ssl: bool, assume_ssl: bool, hsts_max_age: int, exclude_path: Optional[str]):
        self.app = app
        self.force_ssl = force_ssl
        self.assume_ssl = assume_ssl
        self.hsts_header = f"max-age={hsts_max_age}; includeSubDomains".encode()
        self.exclude_path = exclude_path

    async def __call__(self, scope, receive, send):
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        if self.assume_ssl:
            scope = dict(scope)
            scope["scheme"] = "https" if scope["type"] == "http" else "wss"

        secure = scope["scheme"] in ("https", "wss")
        if self.force_ssl and not secure and scope["type"] == "http" and scope["path"] != self.exclude_path:
            url = URL(scope=scope)
            response = RedirectResponse(url.replace(scheme="https"), status_code=301)
            await response(scope, receive, send)
            return

        async def send_with_hsts(message):
            if self.force_ssl and message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"strict-transport-security", self.hsts_header))
                message = {**message, "headers": headers}
            await send(message)

        await self.app(scope, receive, send_with_hsts)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application from ``settings`` (read from the environment when
    omitted). Collaborators are created once and kept on ``app.state``.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Storefront API",
        description="Storefront backend: mail delivery, cache and storage configuration",
        version=VERSION,
    )
    app.state.settings = settings
    app.state.cache = build_cache_store(settings.cache)
    app.state.mailer = Mailer(settings)
    app.state.storage = build_storage_service(settings.storage)

    silenced_path = settings.web.silence_healthcheck_path

    @app.middleware("http")
    async def tag_request_id(request: Request, call_next):
        request_id = sanitize_request_id(request.headers.get("x-request-id"))
        token = request_id_var.set(request_id)
        started = time.monotonic()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            if request.url.path != silenced_path:
                logger.info(
                    "%s %s -> %s (%.1fms)",
                    request.method,
                    request.url.path,
                    response.status_code,
                    (time.monotonic() - started) * 1000,
                )
            return response
        finally:
            request_id_var.reset(token)

    # Added last so it runs first, before the request id tagging.
    app.add_middleware(
        SSLMiddleware,
        force_ssl=settings.web.force_ssl,
        assume_ssl=settings.web.assume_ssl,
        hsts_max_age=settings.web.hsts_max_age,
        exclude_path=silenced_path,
    )

    @app.get("/")
    async def root():
        return {"message": "Storefront API", "version": VERSION}

    @app.get("/up")
    async def up():
        return {"status": "ok"}

    @app.get("/health/mail")
    async def health_mail():
        """Report the active delivery method without contacting the provider."""
        mailer: Mailer = app.state.mailer
        return {
            "status": "ok",
            "delivery_method": delivery_method_name(mailer.delivery_method),
            "perform_deliveries": mailer.perform_deliveries,
            "default_from": mailer.defaults.default_from,
        }

    @app.get("/health/storage")
    def health_storage():
        """
        Report the active storage service.

        For S3 the bucket is probed with HeadBucket; returns 503 if it is
        unreachable or the credentials are rejected.
        """
        storage = app.state.storage
        if isinstance(storage, S3StorageService):
            try:
                storage.check_bucket()
            except Exception as exc:
                logger.error(f"Storage health check failed: {exc}")
                raise HTTPException(
                    status_code=503,
                    detail=f"Storage check failed: {str(exc)}",
                )
        return {"status": "ok", **storage.describe()}

    @app.get("/health/cache")
    def health_cache():
        cache = app.state.cache
        try:
            cache.write("health:ping", "pong", expires_in=5)
            ok = cache.read("health:ping") == "pong"
        except Exception as exc:
            logger.error(f"Cache health check failed: {exc}")
            raise HTTPException(status_code=503, detail=f"Cache check failed: {str(exc)}")
        if not ok:
            raise HTTPException(status_code=503, detail="Cache round trip returned a different value")
        return {"status": "ok", **cache.describe()}

    return app


def run() -> None:
    """Serve the app with uvicorn (``storefront-api``)."""
    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.web.host,
        port=settings.web.port,
        proxy_headers=True,
        forwarded_allow_ips="*",
        access_log=False,
    )
