"""Settlement FastAPI application.

Receives payment gateway webhooks and exposes order settlement state. Each
request is wrapped in the settlement domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV / ENVIRONMENT select log level and renderer.
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from settlement.domain import settlement
from settlement.utils.logging import configure_logging

configure_logging()
settlement.init()

_DOMAIN_PREFIXES = ("/settlement",)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Settlement API",
    description="Marketplace charge settlement and refund reconciliation",
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the settlement domain context for domain routes."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        with settlement.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from settlement.api.routes import router  # noqa: E402

app.include_router(router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domains": {"settlement": {"name": settlement.name}}})
