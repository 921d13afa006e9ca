"""Health check endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courier.api.deps import get_db
from courier.errors import ApiError, ApiErrorCode
from courier.logging import get_logger
from courier.responses import success_response

router = APIRouter()

logger = get_logger(__name__)


@router.get("/health")
def health_check(db: Annotated[Session, Depends(get_db)]) -> dict:
    """Readiness check: the process is up and the message store answers.

    Public (no auth). Returns 503 E_DB_UNAVAILABLE if the database can't be reached.
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("health_db_unreachable", error=str(e))
        raise ApiError(ApiErrorCode.E_DB_UNAVAILABLE, "Database unavailable") from e

    return success_response({"status": "ok", "database": "ok"})
