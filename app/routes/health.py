import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app import schemas
from app.database import get_db
from app.errors import DependencyError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/healthcheck")
async def healthcheck(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database ping failed: %s", exc)
        raise DependencyError("Database unavailable")
    return schemas.ApiResponse.ok({"status": "ok", "database": "ok"}, "Service is healthy")
