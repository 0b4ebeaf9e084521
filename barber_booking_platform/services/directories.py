"""
Read-only directories for barbers and their services.

The booking engine depends on the ``BarberDirectory`` / ``ServiceDirectory``
protocols; the SQLAlchemy implementations below read the catalog tables.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.barber import Barber, BarberService, BarberStatus


@dataclass(frozen=True)
class BarberRecord:
    id: int
    shop_name: str
    status: BarberStatus

    @property
    def is_active(self) -> bool:
        return self.status == BarberStatus.ACTIVE


@dataclass(frozen=True)
class ServiceRecord:
    id: int
    barber_id: int
    name: str
    price: Decimal
    default_duration_minutes: int
    is_active: bool


class BarberDirectory(Protocol):
    async def get_barber(self, barber_id: int) -> Optional[BarberRecord]:
        ...


class ServiceDirectory(Protocol):
    async def get_barber_service(self, service_id: int) -> Optional[ServiceRecord]:
        ...


class SqlBarberDirectory:
    """Barber lookups against the ``barbers`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_barber(self, barber_id: int) -> Optional[BarberRecord]:
        result = await self.session.execute(select(Barber).where(Barber.id == barber_id))
        barber = result.scalar_one_or_none()
        if barber is None:
            return None
        return BarberRecord(id=barber.id, shop_name=barber.shop_name, status=barber.status)


class SqlServiceDirectory:
    """Service lookups against the ``barber_services`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_barber_service(self, service_id: int) -> Optional[ServiceRecord]:
        result = await self.session.execute(
            select(BarberService).where(BarberService.id == service_id)
        )
        service = result.scalar_one_or_none()
        if service is None:
            return None
        return ServiceRecord(
            id=service.id,
            barber_id=service.barber_id,
            name=service.display_name,
            price=service.price,
            default_duration_minutes=service.default_duration_minutes,
            is_active=service.is_active,
        )
