# app/services/zone_service.py
import logging

from sqlmodel import Session

from app.database import transaction
from app.models.zone import DeliveryZone
from app.repositories.zone_repo import ZoneRepository
from app.schemas.zone import DeliveryZoneCreate, DeliveryZoneRead, ZoneAvailabilityRead
from app.services.geo_pricing import resolve_zone

logger = logging.getLogger(__name__)


class ZoneService:
    """
    Delivery zone catalogue: public listing and coverage check, admin creation.
    """

    def __init__(self, zone_repo: ZoneRepository):
        self.zone_repo = zone_repo

    def list_zones(self, session: Session) -> list[DeliveryZoneRead]:
        return [
            DeliveryZoneRead.model_validate(z, from_attributes=True)
            for z in self.zone_repo.list_active(session)
        ]

    def check_availability(
        self,
        session: Session,
        postal_code: str | None = None,
        lat: float | None = None,
        lng: float | None = None,
    ) -> ZoneAvailabilityRead:
        zone = resolve_zone(
            self.zone_repo.list_active(session),
            postal_code=postal_code,
            lat=lat,
            lng=lng,
        )
        if zone is None:
            return ZoneAvailabilityRead(available=False)
        return ZoneAvailabilityRead(
            available=True,
            zone_number=zone.zone_number,
            zone_name=zone.zone_name,
            base_fee=zone.base_fee,
            estimated_delivery_minutes=zone.estimated_delivery_minutes,
        )

    def create_zone(self, session: Session, payload: DeliveryZoneCreate) -> DeliveryZoneRead:
        with transaction(session):
            zone = self.zone_repo.create(session, DeliveryZone(**payload.model_dump()))
            result = DeliveryZoneRead.model_validate(zone, from_attributes=True)
        logger.info("Delivery zone %s created", result.zone_number)
        return result
