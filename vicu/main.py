"""Main FastAPI application for the Vicu backend."""
from fastapi import FastAPI, Request

from vicu.api.routes.actions import router as actions_router
from vicu.api.routes.assignments import router as assignments_router
from vicu.api.routes.checkins import router as checkins_router
from vicu.api.routes.events import router as events_router
from vicu.api.routes.experiments import router as experiments_router
from vicu.api.routes.next_step import router as next_step_router
from vicu.api.routes.stage import router as stage_router
from vicu.api.routes.stats import router as stats_router
from vicu.api.routes.whatsapp import router as whatsapp_router
from vicu.core.config import settings
from vicu.core.logging import configure_logging
from vicu.core.middleware import RequestIDMiddleware
from vicu.observability.client import flush_opik, init_opik
from vicu.observability.tracing import trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(experiments_router)
app.include_router(actions_router)
app.include_router(checkins_router)
app.include_router(stage_router)
app.include_router(next_step_router)
app.include_router(stats_router)
app.include_router(events_router)
app.include_router(whatsapp_router)
app.include_router(assignments_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.on_event("shutdown")
async def shutdown_observability() -> None:
    flush_opik()


@app.get("/health", tags=["health"], summary="Readiness check")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can check the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
