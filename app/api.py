"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.deps import get_owner_id
from app.schemas import ErrorResponse, ReadingIn, ReadingOut
from datastore.telemetry_store import StoreUnavailableError, TelemetryStore, build_default_store
from services.ingestion import IngestionService, IngestionValidationError, build_default_ingestion

router = APIRouter()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_store() -> TelemetryStore:
    return build_default_store()


@router.post(
    "/telemetry",
    status_code=status.HTTP_201_CREATED,
    response_model=ReadingOut,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Store one reading reported by a device.",
)
def create_reading(
    body: ReadingIn,
    ingestion: IngestionService = Depends(get_ingestion),
) -> ReadingOut:
    try:
        stored = ingestion.ingest(body.to_domain())
    except IngestionValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error saving telemetry",
        ) from exc
    return ReadingOut.model_validate(stored)


@router.get(
    "/telemetry",
    response_model=List[ReadingOut],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="List the caller's readings, most recent first.",
)
def list_readings(
    owner_id: str = Depends(get_owner_id),
    requested_owner: Optional[str] = Query(default=None, alias="ownerId"),
    location_label: Optional[str] = Query(default=None, alias="locationLabel"),
    minutes: Optional[float] = Query(default=None, gt=0),
    store: TelemetryStore = Depends(get_store),
) -> List[ReadingOut]:
    if requested_owner is not None and requested_owner != owner_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Credential does not grant access to the requested owner",
        )

    since: Optional[datetime] = None
    if minutes is not None:
        since = datetime.now(timezone.utc) - timedelta(minutes=minutes)

    try:
        readings = store.list_for_owner(owner_id, location_label=location_label, since=since)
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error fetching telemetry",
        ) from exc
    return [ReadingOut.model_validate(reading) for reading in readings]


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
def healthcheck(store: TelemetryStore = Depends(get_store)) -> dict[str, str]:
    ok, detail = store.ping()
    return {"status": "ok" if ok else "error", "db": detail}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
