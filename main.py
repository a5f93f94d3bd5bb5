"""
Main FastAPI application (entrypoint).

Responsibilities:
- Wire API routers (registrations, summaries)
- Register centralized exception handlers
- Provide middleware: request-id logging, rate limiting of registration calls
- Add health / readiness endpoints
- Build the service container on startup and shut it down gracefully

Run:
- python main.py [--port 8080] [--use-placeholder]
- python main.py --generate-vapid-keys
"""
import argparse
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from api import routes_registrations, routes_summary
from config.settings import Settings
from core.container import ServiceContainer, build_container
from core.exception_handlers import register_exception_handlers
from core.logging import configure_logging, request_logging_middleware
from core.rate_limiter import RateLimiterMiddleware
from core.response import error, ok
from tools.vapid import generate_vapid_keys

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    container_factory: Callable[[Settings], ServiceContainer] = build_container,
) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Path(settings.DATA_DIR).mkdir(parents=True, exist_ok=True)
        container = container_factory(settings)
        app.state.container = container
        await container.start()
        logger.info("7am started")
        try:
            yield
        finally:
            await container.stop()
            logger.info("7am shut down")

    app = FastAPI(title=settings.API_TITLE, version=settings.API_VERSION, lifespan=lifespan)

    # CORS - the push service worker and pages are served from elsewhere in dev
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes_registrations.router, tags=["registrations"])
    app.include_router(routes_summary.router, tags=["summaries"])

    register_exception_handlers(app)
    app.middleware("http")(request_logging_middleware)
    app.add_middleware(RateLimiterMiddleware, calls=settings.RATE_LIMIT_CALLS, per_seconds=settings.RATE_LIMIT_PERIOD)

    @app.get("/health")
    async def health():
        """Simple health endpoint used by load balancers and orchestrators."""
        return ok({"status": "ok"})

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness: the database answers. Reports how many locations already have a summary."""
        container: ServiceContainer = request.app.state.container
        try:
            async with container.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            logger.warning("Readiness check: database unreachable", exc_info=True)
            return JSONResponse(status_code=503, content=error(code="db_unreachable", message="DB unavailable"))
        cached = sum(1 for key in container.locations if key in container.cache)
        return ok({"ready": True, "summaries": cached, "locations": len(container.locations)})

    return app


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Daily weather summaries delivered by Web Push.")
    parser.add_argument("--port", type=int, default=8080, help="the port that the server should listen on")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--generate-vapid-keys", action="store_true",
                        help="generate a new vapid key pair, which will be outputted to stdout")
    parser.add_argument("--use-placeholder", action="store_true",
                        help="use placeholder weather data instead of real API data")
    args = parser.parse_args(argv)

    if args.generate_vapid_keys:
        private_key, public_key = generate_vapid_keys()
        print("all keys are base64 url encoded.")
        print(f"public key: {public_key}")
        print(f"private key: {private_key}")
        return 0

    settings = Settings()
    if args.use_placeholder:
        settings.USE_PLACEHOLDER = True
    configure_logging(settings.LOG_LEVEL)
    logger.info("starting 7am...")

    missing = settings.missing_required()
    if missing:
        logger.critical("missing env: %s", ", ".join(missing))
        return 1

    uvicorn.run(create_app(settings), host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
