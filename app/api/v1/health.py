import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.events import get_backend_info
from app.core.exceptions import RFC9457Exception

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: Literal["ok", "error"] = Field(..., description="The status of the health check")
    events: dict[str, Any] = Field(default_factory=dict, description="Active messaging backend")


@router.get("/health", tags=["health"], response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_session)):
    try:
        result = await db.execute(select(text("1")))
        result.scalar_one()

        return HealthResponse(status="ok", events=get_backend_info())
    except Exception as e:
        logger.error(f"Error checking health: {e}")
        raise RFC9457Exception(
            status_code=503,
            title="Service Unavailable",
            detail="Database health check failed",
        ) from None
