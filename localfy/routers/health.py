from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from localfy.config import settings
from localfy.database import ping_mongo

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    mongo: str
    store: str
    environment: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    detail: str | None = None


@router.get("/health", response_model=HealthResponse)
async def get_health(request: Request) -> JSONResponse:
    mongo_ok, mongo_detail = await ping_mongo()
    store = getattr(request.app.state, "store", None)
    store_status = store.status.value if store is not None else "stopped"

    http_status = status.HTTP_200_OK if mongo_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    payload = HealthResponse(
        status="ok" if mongo_ok else "degraded",
        mongo="up" if mongo_ok else "down",
        store=store_status,
        environment=settings.app_env,
        detail=mongo_detail if not mongo_ok else None,
    )
    return JSONResponse(status_code=http_status, content=payload.model_dump(mode="json", exclude_none=True))
