"""FastAPI application factory for the modrules read-only API.

Endpoints: /health, /metrics, /modules, /modules/{name},
/modules/{name}/source, /check.
"""
from __future__ import annotations

import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from modrules import metrics
from modrules.config import get_config
from modrules.descriptor import DescriptorError
from modrules.errors import map_exception
from modrules.log import configure_logging
from modrules_api.routes.modules import router as modules_router


def create_app() -> FastAPI:
    app = FastAPI(
        title="modrules API",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
    )

    @app.get("/health")
    def health():  # noqa: D401
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics_snapshot():  # noqa: D401
        return metrics.snapshot()

    @app.exception_handler(DescriptorError)
    async def _descriptor_error(request: Request, exc: DescriptorError):
        return JSONResponse(
            status_code=500,
            content={"error_type": map_exception(exc), "message": str(exc)},
        )

    app.include_router(modules_router)

    @app.middleware("http")
    async def _metrics_mw(request: Request, call_next):  # noqa: D401
        start = time.time()
        labels = {"route": request.url.path, "method": request.method}
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000.0
        metrics.inc("api_request_total", labels)
        metrics.observe("api_request_latency_ms", duration_ms, labels)
        if response.status_code >= 400:
            metrics.inc(
                "api_request_errors_total",
                labels | {"status": response.status_code},
            )
        return response

    return app


app = create_app()


def main() -> None:  # pragma: no cover
    import uvicorn

    cfg = get_config()
    configure_logging(cfg.logging)
    uvicorn.run(
        "modrules_api.app:app", host=cfg.api.host, port=cfg.api.port
    )


if __name__ == "__main__":  # pragma: no cover
    main()
