# airdrop_backend/api/main.py

# This is the main FastAPI application entry point.
# It builds the app, wires the components during the lifespan (store
# connection, collections/indexes, airdrop server probe), installs the
# exception handlers that render the response envelope and includes the
# feature routers.

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config.settings import Settings, get_settings
from ..db.mongo_client import MongoStore
from ..features.airdrop import routes as airdrop_routes
from ..features.referral import routes as referral_routes
from ..features.subscription import routes as subscription_routes
from ..features.twitter import routes as twitter_routes
from ..shared import errors
from ..shared.errors import AirdropError, create_response
from ..shared.logging_config import setup_logging
from .dependencies import Services, build_services

logger = logging.getLogger(__name__)

ServicesFactory = Callable[[Settings, MongoStore], Services]


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[MongoStore] = None,
    services_factory: ServicesFactory = build_services,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)
        logger.info("Application startup initiated.")

        # --- Step 1: Connect to MongoDB and install collections/indexes ---
        app_store = store or MongoStore(settings)
        await app_store.connect()  # StorageUnavailable here is fatal to startup
        await app_store.ensure_collections()

        # --- Step 2: Build the component graph ---
        services = services_factory(settings, app_store)

        # --- Step 3: Make sure the airdrop server is reachable ---
        if settings.CHECK_AIRDROP_SERVER_ON_STARTUP:
            info = await services.distributor.recipient_info()
            logger.info("Airdrop server reachable at %s: %s", services.distributor.recipient_info_url, info)

        app.state.settings = settings
        app.state.services = services
        logger.info("Application startup complete.")
        try:
            yield
        finally:
            logger.info("Application shutdown initiated.")
            app.state.services = None
            await app_store.close()

    app = FastAPI(title="Airdrop Backend", lifespan=lifespan)

    # --- CORS Middleware ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers: everything leaves as the response envelope ---
    @app.exception_handler(AirdropError)
    async def airdrop_error_handler(request: Request, exc: AirdropError):
        if exc.http_status >= 500:
            logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc)
        else:
            logger.info("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=create_response(errors.WRONG_PARAMS, "Wrong params", {"fields": fields}),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=create_response(errors.UNKNOWN_ERROR, "An internal server error occurred."),
        )

    # --- Include Feature Routers ---
    app.include_router(twitter_routes.router)
    app.include_router(referral_routes.router)
    app.include_router(airdrop_routes.router)
    app.include_router(subscription_routes.router)

    @app.get("/")
    async def read_root():
        return create_response(errors.SUCCESS, "Airdrop backend is running.")

    return app


# --- Main Execution Block ---
if __name__ == "__main__":
    uvicorn.run(
        "airdrop_backend.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )
