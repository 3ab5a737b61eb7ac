from __future__ import annotations

from fastapi import FastAPI

from storefront.api.errors import install_error_handlers
from storefront.api.routes_public import public_router
from storefront.api.structured_logging import RequestLogMiddleware
from storefront.runtime.config import load_market_config
from storefront.runtime.executor_boot import build_executor as _build_executor


def build_executor(cfg=None):
    """Build the Executor for API runtime.

    This wrapper exists so tests can monkeypatch `storefront.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor(cfg)


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load market config + attach executor
      - False: keep lightweight for unit tests / import-time validation
    """
    cfg = load_market_config()

    # Disable docs in production.
    if cfg.mode == "prod":
        app = FastAPI(title="Storefront Ledger API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Storefront Ledger API")

    app.state.cfg = cfg
    app.state.executor = build_executor(cfg) if boot_runtime else None

    app.add_middleware(RequestLogMiddleware)
    install_error_handlers(app)
    app.include_router(public_router)

    return app
