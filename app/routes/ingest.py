"""Reading ingestion routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.ingest import IngestReceipt, ReadingIn
from app.services.ingest_service import ReadingIngestService

router = APIRouter(prefix="/ingest", tags=["ingest"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="ingest failure")


@router.post("/reading", response_model=IngestReceipt)
async def ingest_reading(
	payload: ReadingIn,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> IngestReceipt:
	service = ReadingIngestService(db, getattr(request.app.state, "redis", None))
	try:
		return await service.ingest_reading(payload)
	except Exception as exc:
		raise _map_error(exc) from exc
