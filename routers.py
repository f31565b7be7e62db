from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from errors import NotFoundError
from logger import get_logger
from schemas import CountryResponse, DeleteResponse, RefreshResponse, StatusResponse
from service import CountryService, get_country_service

logger = get_logger(__name__)
router = APIRouter()


@router.post("/countries/refresh", status_code=status.HTTP_200_OK, response_model=RefreshResponse)
async def refresh_countries(
    db: AsyncSession = Depends(get_db),
    service: CountryService = Depends(get_country_service),
):
    result = await service.refresh_countries(db)
    return RefreshResponse(total_countries=result.total_countries, last_refreshed_at=result.last_refreshed_at)


@router.get("/countries", response_model=List[CountryResponse])
async def list_countries(
    region: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    service: CountryService = Depends(get_country_service),
):
    return await service.list_countries(db, region=region, currency=currency, sort=sort)


# must be registered before /countries/{name}
@router.get("/countries/image")
async def get_summary_image(service: CountryService = Depends(get_country_service)):
    path = service.reporter.image_path
    if not service.reporter.has_image():
        logger.info("Summary image not found at %s", path)
        raise NotFoundError("Summary image not found")
    return FileResponse(path, media_type="image/png")


@router.get("/countries/{name}", response_model=CountryResponse)
async def get_country(
    name: str,
    db: AsyncSession = Depends(get_db),
    service: CountryService = Depends(get_country_service),
):
    return await service.get_country(db, name)


@router.delete("/countries/{name}", response_model=DeleteResponse)
async def delete_country(
    name: str,
    db: AsyncSession = Depends(get_db),
    service: CountryService = Depends(get_country_service),
):
    deleted = await service.delete_country(db, name)
    return DeleteResponse(deletedCount=deleted)


@router.get("/status", response_model=StatusResponse)
async def get_status(
    db: AsyncSession = Depends(get_db),
    service: CountryService = Depends(get_country_service),
):
    return await service.status(db)


@router.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed: %r", e)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "disconnected", "timestamp": timestamp},
        )
    return {"status": "healthy", "database": "connected", "timestamp": timestamp}
