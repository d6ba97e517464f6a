from datetime import datetime

from fastapi import APIRouter

from ....config import settings
from ....core.shared.database_service import database_service
from ....core.storage.content_store import get_content_store
from ..models import HealthStatus

router = APIRouter()


@router.get("/health", response_model=HealthStatus, tags=["System"])
async def health_check():
    """Health check endpoint."""
    database = await database_service.health_check()
    storage_available = get_content_store().is_available()

    healthy = database.get("connected", False) and storage_available
    return HealthStatus(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(),
        version=settings.api_version,
        database=database,
        storage_available=storage_available,
    )


@router.get("/config/upload-limits", tags=["Configuration"])
async def get_upload_limits():
    """Accepted file types and size limit for intake."""
    return {
        "allowed_mime_types": settings.allowed_mime_types,
        "max_file_size": settings.max_file_size,
    }
