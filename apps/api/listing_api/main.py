import logging
import uuid

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response

from .routers.analytics import router as analytics_router
from .routers.billing import router as billing_router
from .routers.bulk import router as bulk_router
from .routers.comps import router as comps_router
from .routers.cron import router as cron_router
from .routers.generations import router as generations_router
from .routers.health import router as health_router
from .routers.market_reports import router as market_reports_router
from .routers.mls import router as mls_router
from .routers.staging import router as staging_router
from .routers.teams import router as teams_router
from .settings import settings


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging()

app = FastAPI(title="Listing Copy API", version="0.1.0")


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:  # type: ignore[override]
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


app.include_router(health_router)
app.include_router(generations_router)
app.include_router(staging_router)
app.include_router(bulk_router)
app.include_router(analytics_router)
app.include_router(teams_router)
app.include_router(comps_router)
app.include_router(market_reports_router)
app.include_router(mls_router)
app.include_router(billing_router)
app.include_router(cron_router)
