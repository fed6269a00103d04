from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from services.metrics import PROMETHEUS_CONTENT_TYPE, render_prometheus

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=PlainTextResponse)
def metrics() -> PlainTextResponse:
    return PlainTextResponse(render_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
