# app/routers/zones.py
from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.core.auth import require_admin
from app.database import get_session
from app.repositories.zone_repo import ZoneRepository
from app.schemas.zone import DeliveryZoneCreate, DeliveryZoneRead, ZoneAvailabilityRead
from app.services.zone_service import ZoneService

router = APIRouter(prefix="/zones", tags=["Delivery Zones"])

service = ZoneService(ZoneRepository())


@router.get("", response_model=list[DeliveryZoneRead])
def list_zones(session: Session = Depends(get_session)):
    """Active delivery zones (public)."""
    return service.list_zones(session)


@router.get("/check", response_model=ZoneAvailabilityRead)
def check_zone(
    session: Session = Depends(get_session),
    postal_code: str | None = Query(default=None, max_length=16),
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
):
    """
    Whether a postal code (or point) is served, and by which zone.
    """
    return service.check_availability(session, postal_code, lat, lng)


@router.post(
    "",
    response_model=DeliveryZoneRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_zone(
    payload: DeliveryZoneCreate,
    session: Session = Depends(get_session),
):
    """
    Register a delivery zone (admin only). A postal code may belong to one
    zone only; overlaps are rejected with 409.
    """
    return service.create_zone(session, payload)
