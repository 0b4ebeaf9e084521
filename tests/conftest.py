"""Shared test fixtures and helpers."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import pytest

from barber_booking_platform.config import Settings
from barber_booking_platform.database import DatabaseManager
from barber_booking_platform.models.barber import Barber, BarberService, BarberStatus
from barber_booking_platform.schemas.booking import BookingCreateRequest
from barber_booking_platform.services.booking_service import BookingService
from barber_booking_platform.utils.effects import NonCriticalEffects
from barber_booking_platform.utils.exceptions import CacheServiceError

# Monday morning; every scheduling test is relative to this instant
FIXED_NOW = datetime(2030, 6, 3, 9, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def at(hours: float = 0, days: int = 0) -> datetime:
    """Instant ``days`` and ``hours`` after FIXED_NOW."""
    return FIXED_NOW + timedelta(days=days, hours=hours)


@dataclass
class Catalog:
    barber_id: int
    other_barber_id: int
    inactive_barber_id: int
    haircut_id: int
    retired_service_id: int
    other_barber_service_id: int


class FakeCacheInvalidator:
    """Records invalidations; raises when ``fail`` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.invalidated: List[int] = []

    async def invalidate_barber(self, barber_id: int) -> None:
        if self.fail:
            raise CacheServiceError("connection refused")
        self.invalidated.append(barber_id)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}",
        enable_cache=False,
        lock_wait_timeout_seconds=10.0,
    )


@pytest.fixture
async def db_manager(settings):
    manager = DatabaseManager(settings)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
async def catalog(db_manager) -> Catalog:
    async with db_manager.get_session() as session:
        async with session.begin():
            barber = Barber(shop_name="Fade Factory", status=BarberStatus.ACTIVE)
            other_barber = Barber(shop_name="Sharp Lines", status=BarberStatus.ACTIVE)
            inactive_barber = Barber(shop_name="Closed Doors", status=BarberStatus.SUSPENDED)
            session.add_all([barber, other_barber, inactive_barber])
            await session.flush()

            haircut = BarberService(
                barber_id=barber.id,
                service_name="Haircut",
                custom_name="Classic Cut",
                price=Decimal("25.00"),
                default_duration_minutes=30,
            )
            retired = BarberService(
                barber_id=barber.id,
                service_name="Hot Towel Shave",
                price=Decimal("30.00"),
                is_active=False,
            )
            other_service = BarberService(
                barber_id=other_barber.id,
                service_name="Beard Trim",
                price=Decimal("15.00"),
            )
            session.add_all([haircut, retired, other_service])
            await session.flush()

            return Catalog(
                barber_id=barber.id,
                other_barber_id=other_barber.id,
                inactive_barber_id=inactive_barber.id,
                haircut_id=haircut.id,
                retired_service_id=retired.id,
                other_barber_service_id=other_service.id,
            )


@pytest.fixture
def cache_invalidator():
    return FakeCacheInvalidator()


@pytest.fixture
async def booking_service(db_manager, settings, cache_invalidator):
    service = BookingService(
        db_manager.session_factory,
        settings,
        effects=NonCriticalEffects(),
        cache_invalidator=cache_invalidator,
        clock=fixed_clock,
    )
    yield service
    await service.effects.drain(timeout=5)


def make_request(
    catalog: Catalog,
    start_time: Optional[datetime] = None,
    duration_minutes: int = 30,
    **overrides
) -> BookingCreateRequest:
    """BookingCreateRequest for the catalog's haircut, two hours from now by default."""
    data = {
        "barber_id": catalog.barber_id,
        "service_id": catalog.haircut_id,
        "start_time": start_time or at(hours=2),
        "duration_minutes": duration_minutes,
        "customer_id": 42,
    }
    data.update(overrides)
    return BookingCreateRequest(**data)
