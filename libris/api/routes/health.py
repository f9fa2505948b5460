"""Health check endpoint for monitoring and deployment verification."""

from fastapi import APIRouter, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from libris.db.session import get_session_factory
from libris.utils.exceptions import ConfigurationError
from libris.version import __version__

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """
    Health check endpoint that verifies API and database connectivity.

    Returns:
        dict: Health status including database connection state and API version

    Raises:
        HTTPException: 503 if the database is unconfigured or unavailable
    """
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail="Database not configured") from e
    except (SQLAlchemyError, OSError) as e:
        raise HTTPException(status_code=503, detail="Database unavailable") from e
    return {"status": "healthy", "database": "connected", "version": __version__}
