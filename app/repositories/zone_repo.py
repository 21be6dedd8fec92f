# app/repositories/zone_repo.py
from sqlmodel import Session, select

from app.core.errors import ConflictError
from app.models.zone import DeliveryZone


class ZoneRepository:
    """
    Data access layer for delivery_zones.
    """

    def list_active(self, session: Session) -> list[DeliveryZone]:
        stmt = (
            select(DeliveryZone)
            .where(DeliveryZone.is_active == True)
            .order_by(DeliveryZone.zone_number)
        )
        return list(session.exec(stmt).all())

    def get_by_number(self, session: Session, zone_number: int) -> DeliveryZone | None:
        stmt = select(DeliveryZone).where(DeliveryZone.zone_number == zone_number)
        return session.exec(stmt).first()

    def create(self, session: Session, zone: DeliveryZone) -> DeliveryZone:
        """
        Insert a zone, refusing postal codes already served by another
        active zone so every code maps to exactly one zone.
        """
        if self.get_by_number(session, zone.zone_number) is not None:
            raise ConflictError(
                "Zone number already exists",
                zone_number=zone.zone_number,
            )

        taken: set[str] = set()
        for other in self.list_active(session):
            taken.update(other.postal_codes)
        overlap = sorted(taken.intersection(zone.postal_codes))
        if overlap:
            raise ConflictError(
                "Postal codes already belong to another zone",
                postal_codes=overlap,
            )

        session.add(zone)
        session.flush()
        return zone
