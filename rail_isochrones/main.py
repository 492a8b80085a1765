from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rail_isochrones.adapters.api.controllers.isochrones import (
    router as isochrones_router,
)
from rail_isochrones.adapters.settings import _env_bool

app = FastAPI(title="UK Rail Isochrones")
app.include_router(isochrones_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Keep server errors JSON shaped, like the 404/422 responses."""

    logging.getLogger("uvicorn.error").exception(
        "Unhandled exception", extra={"path": str(request.url.path)}
    )

    reveal = _env_bool("ISOCHRONES_REVEAL_ERRORS", False)
    if reveal or isinstance(exc, (FileNotFoundError, RuntimeError, ValueError)):
        detail = str(exc) or exc.__class__.__name__
    else:
        detail = "Internal Server Error"

    return JSONResponse(status_code=500, content={"detail": detail})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
