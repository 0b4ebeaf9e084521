"""
Booking service: scheduling and lifecycle of barber appointments.
"""

import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar
from uuid import uuid4

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..cache import CacheInvalidator, NullCacheInvalidator
from ..config import Settings
from ..database import bound_lock_wait
from ..models.booking import Booking
from ..models.booking_history import BookingHistory
from ..models.booking_state_machine import (
    CANCELLATION_STATUSES,
    BookingStatus,
    can_reschedule,
    cancellation_status,
    validate_transition,
)
from ..repositories.booking_repository import BookingRepository
from ..schemas.booking import (
    BookingCancelRequest,
    BookingCreateRequest,
    BookingRescheduleRequest,
    BookingUpdateRequest,
)
from ..schemas.history import (
    BookingCreated,
    BookingDetailsUpdated,
    BookingRescheduled,
    StatusChanged,
)
from ..utils.effects import NonCriticalEffects
from ..utils.exceptions import (
    BarberNotFoundError,
    BarberUnavailableError,
    BookingNotFoundError,
    BookingNotReschedulableError,
    BookingPlatformError,
    BookingTerminalStateError,
    GuestContactRequiredError,
    InternalError,
    LockTimeoutError,
    ServiceNotFoundError,
    ServiceUnavailableError,
    StoreUnavailableError,
    TransientError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from ..utils.timeutils import ensure_utc, utcnow
from .conflict_resolver import ConflictResolver, is_lock_timeout
from .directories import (
    BarberDirectory,
    BarberRecord,
    ServiceDirectory,
    ServiceRecord,
    SqlBarberDirectory,
    SqlServiceDirectory,
)
from .history_service import HistoryService
from .pricing import PricingCalculator
from .time_slot_validator import Clock, TimeSlotValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BookingService:
    """
    Coordinate validation, conflict resolution, persistence and audit for bookings.

    Every write that touches a barber's timeline runs in one transaction that
    first takes the barber's lock, then checks for overlaps, then writes.
    History entries and cache invalidation are scheduled on ``effects`` once
    that transaction has committed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        effects: Optional[NonCriticalEffects] = None,
        cache_invalidator: Optional[CacheInvalidator] = None,
        clock: Optional[Clock] = None,
        barber_directory_factory: Callable[[AsyncSession], BarberDirectory] = SqlBarberDirectory,
        service_directory_factory: Callable[[AsyncSession], ServiceDirectory] = SqlServiceDirectory
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.effects = effects or NonCriticalEffects()
        self.cache_invalidator = cache_invalidator or NullCacheInvalidator()
        self.clock = clock or utcnow
        self.barber_directory_factory = barber_directory_factory
        self.service_directory_factory = service_directory_factory

        self.validator = TimeSlotValidator.from_settings(settings, clock=self.clock)
        self.pricing = PricingCalculator(settings.tax_rate, settings.currency)
        self.history = HistoryService(session_factory)

    # Create

    async def create_booking(
        self,
        request: BookingCreateRequest,
        actor_id: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> Booking:
        """
        Create a booking for a barber's service.

        Args:
            request: Slot, service, customer and pricing details
            actor_id: User performing the request, None for system calls
            timeout: Deadline in seconds, defaults to ``lock_wait_timeout_seconds``

        Returns:
            The committed booking

        Raises:
            TimeSlotValidationError: When the slot breaks a scheduling rule
            BarberNotFoundError, ServiceNotFoundError: Unknown catalog entries
            BarberUnavailableError, ServiceUnavailableError: Inactive catalog entries
            GuestContactRequiredError: Guest booking without contact details
            SlotUnavailableError: When the slot overlaps an active booking
            LockTimeoutError: When the barber's lock was not acquired in time
        """
        timeout = self._resolve_timeout(timeout)
        start_time = ensure_utc(request.start_time)
        logger.info(
            f"Creating booking for barber {request.barber_id}, service {request.service_id} "
            f"at {start_time.isoformat()} ({request.duration_minutes} min)"
        )

        self.validator.validate(start_time, request.duration_minutes)

        booking = await self._guarded(
            lambda: self._create(request, start_time, timeout),
            resource=f"barber {request.barber_id}",
            timeout=timeout,
            operation="create booking"
        )

        self._after_commit(
            booking,
            BookingCreated(
                status=booking.status,
                barber_id=booking.barber_id,
                start_time=booking.scheduled_start_time,
                end_time=booking.scheduled_end_time,
                total_price=booking.total_price,
            ),
            actor_id
        )
        log_business_event(
            "booking_created",
            {
                "booking_id": booking.id,
                "booking_number": booking.booking_number,
                "barber_id": booking.barber_id,
                "total_price": str(booking.total_price),
            },
            user_id=actor_id
        )
        logger.info(f"Booking {booking.booking_number} created successfully")
        return booking

    async def _create(self, request: BookingCreateRequest, start_time: datetime, timeout: float) -> Booking:
        async with self.session_factory() as session:
            # Catalog lookups happen before the write transaction starts
            async with session.begin():
                await bound_lock_wait(session, timeout)
                barber = await self._get_active_barber(session, request.barber_id)
                service = await self._get_active_service(session, request.service_id, barber.id)

            self._validate_customer(request)

            pricing = self.pricing.compute(
                request.service_price if request.service_price is not None else service.price,
                request.discount_amount or 0
            )
            end_time = start_time + timedelta(minutes=request.duration_minutes)

            async with session.begin():
                await bound_lock_wait(session, timeout)
                repo = BookingRepository(session)
                await ConflictResolver(repo).reserve(barber.id, start_time, end_time, timeout=timeout)

                booking = Booking(
                    uuid=str(uuid4()),
                    booking_number=await self._generate_booking_number(repo),
                    barber_id=barber.id,
                    customer_id=request.customer_id,
                    customer_name=request.customer_name,
                    customer_email=request.customer_email,
                    customer_phone=request.customer_phone,
                    service_name=service.name,
                    duration_minutes=request.duration_minutes,
                    scheduled_start_time=start_time,
                    scheduled_end_time=end_time,
                    service_price=pricing.service_price,
                    discount_amount=pricing.discount_amount,
                    tax_amount=pricing.tax_amount,
                    total_price=pricing.total_price,
                    currency=pricing.currency,
                    status=BookingStatus.PENDING,
                    notes=request.notes,
                    special_requests=request.special_requests,
                    booking_source=(
                        request.booking_source.value if request.booking_source
                        else self.settings.default_booking_source
                    ),
                )
                await repo.add(booking)

        return booking

    async def _get_active_barber(self, session: AsyncSession, barber_id: int) -> BarberRecord:
        barber = await self.barber_directory_factory(session).get_barber(barber_id)
        if barber is None:
            raise BarberNotFoundError(barber_id)
        if not barber.is_active:
            raise BarberUnavailableError(barber_id, barber.status.value)
        return barber

    async def _get_active_service(self, session: AsyncSession, service_id: int, barber_id: int) -> ServiceRecord:
        service = await self.service_directory_factory(session).get_barber_service(service_id)
        if service is None:
            raise ServiceNotFoundError(service_id)
        if service.barber_id != barber_id:
            raise ServiceUnavailableError(service_id, "Service is not offered by this barber")
        if not service.is_active:
            raise ServiceUnavailableError(service_id, "Service is not available")
        return service

    @staticmethod
    def _validate_customer(request: BookingCreateRequest) -> None:
        if not request.is_guest:
            return
        if not request.customer_name:
            raise GuestContactRequiredError("customer name is required for guest bookings")
        if not request.customer_email and not request.customer_phone:
            raise GuestContactRequiredError("customer email or phone is required for guest bookings")

    async def _generate_booking_number(self, repo: BookingRepository) -> str:
        """Allocate ``<prefix><YYYYMMDD><4 digits>``, retrying on collisions."""
        prefix = f"{self.settings.booking_number_prefix}{self.clock():%Y%m%d}"
        for _ in range(self.settings.booking_number_max_attempts):
            candidate = f"{prefix}{random.randint(0, 9999):04d}"
            if not await repo.booking_number_exists(candidate):
                return candidate

        logger.warning(f"Booking number space for {prefix} is congested")
        raise TransientError(
            "Could not allocate a booking number, please retry",
            retry_after=self.settings.transient_retry_after_seconds
        )

    # Update details

    async def update_booking(
        self,
        booking_id: int,
        request: BookingUpdateRequest,
        actor_id: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> Booking:
        """
        Update contact details and notes.

        Only fields present in the request are changed. Guest bookings must
        keep a name and an email or phone.
        """
        timeout = self._resolve_timeout(timeout)
        changes = request.changes()

        booking, delta = await self._guarded(
            lambda: self._update_details(booking_id, changes, timeout),
            resource=f"booking {booking_id}",
            timeout=timeout,
            operation="update booking"
        )

        if delta.new:
            self._after_commit(booking, delta, actor_id, invalidate_cache=False)
            logger.info(f"Booking {booking_id} updated: {', '.join(delta.changed_fields)}")
        return booking

    async def _update_details(
        self,
        booking_id: int,
        changes: Dict[str, Optional[str]],
        timeout: float
    ) -> Tuple[Booking, BookingDetailsUpdated]:
        async with self.session_factory() as session:
            async with session.begin():
                await bound_lock_wait(session, timeout)
                repo = BookingRepository(session)
                await repo.set_lock_timeout(timeout)
                booking = await self._get_booking(repo, booking_id, for_update=True)

                old: Dict[str, Any] = {}
                new: Dict[str, Any] = {}
                for field, value in changes.items():
                    current = getattr(booking, field)
                    if current != value:
                        old[field] = current
                        new[field] = value
                        setattr(booking, field, value)

                if booking.is_guest and (
                    not booking.customer_name
                    or not (booking.customer_email or booking.customer_phone)
                ):
                    raise GuestContactRequiredError("guest bookings need a name and an email or phone")

                await repo.flush()

        return booking, BookingDetailsUpdated(old=old, new=new)

    # Reschedule

    async def reschedule_booking(
        self,
        booking_id: int,
        request: BookingRescheduleRequest,
        actor_id: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> Booking:
        """
        Move a pending or confirmed booking to a new slot.

        The conflict check (ignoring the booking itself) and the update of
        start and end happen in one locked transaction; on any failure the
        stored times stay as they were.

        Raises:
            BookingNotReschedulableError: Status is not pending/confirmed
            TimeSlotValidationError: New slot breaks a scheduling rule
            SlotUnavailableError: New slot overlaps another active booking
            LockTimeoutError: Barber lock not acquired in time
        """
        timeout = self._resolve_timeout(timeout)
        logger.info(f"Rescheduling booking {booking_id} to {ensure_utc(request.new_start_time).isoformat()}")

        booking, delta = await self._guarded(
            lambda: self._reschedule(booking_id, request, timeout),
            resource=f"booking {booking_id}",
            timeout=timeout,
            operation="reschedule booking"
        )

        self._after_commit(booking, delta, actor_id, reason=request.reason)
        log_business_event(
            "booking_rescheduled",
            {
                "booking_id": booking.id,
                "barber_id": booking.barber_id,
                "old_start_time": delta.old_start_time.isoformat(),
                "new_start_time": delta.new_start_time.isoformat(),
            },
            user_id=actor_id
        )
        return booking

    async def _reschedule(
        self,
        booking_id: int,
        request: BookingRescheduleRequest,
        timeout: float
    ) -> Tuple[Booking, BookingRescheduled]:
        async with self.session_factory() as session:
            async with session.begin():
                await bound_lock_wait(session, timeout)
                booking = await self._get_booking(BookingRepository(session), booking_id)
            self._ensure_reschedulable(booking)

            start_time = ensure_utc(request.new_start_time)
            duration = request.duration_minutes or booking.duration_minutes
            self.validator.validate(start_time, duration)
            end_time = start_time + timedelta(minutes=duration)

            async with session.begin():
                await bound_lock_wait(session, timeout)
                repo = BookingRepository(session)
                await ConflictResolver(repo).reserve(
                    booking.barber_id,
                    start_time,
                    end_time,
                    exclude_booking_id=booking.id,
                    timeout=timeout
                )

                # Status may have moved while we waited for the lock
                booking = await self._get_booking(repo, booking_id, for_update=True)
                self._ensure_reschedulable(booking)

                delta = BookingRescheduled(
                    old_start_time=booking.scheduled_start_time,
                    old_end_time=booking.scheduled_end_time,
                    new_start_time=start_time,
                    new_end_time=end_time,
                )
                booking.reschedule_to(start_time, duration)
                await repo.flush()

        return booking, delta

    @staticmethod
    def _ensure_reschedulable(booking: Booking) -> None:
        if not can_reschedule(booking.status):
            raise BookingNotReschedulableError(
                booking.id,
                booking.status.value,
                [status.value for status in booking.allowed_transitions]
            )

    # Status changes

    async def update_status(
        self,
        booking_id: int,
        new_status: BookingStatus,
        actor_id: Optional[int] = None,
        reason: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> Booking:
        """
        Move a booking to ``new_status`` if the state machine allows it.

        Raises:
            InvalidStatusTransitionError: Transition not in the table
        """
        return await self._change_status(
            booking_id,
            BookingStatus(new_status),
            actor_id,
            reason,
            timeout,
            reject_terminal=False
        )

    async def cancel_booking(
        self,
        booking_id: int,
        request: BookingCancelRequest,
        actor_id: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> Booking:
        """
        Cancel a booking on behalf of the customer or the barber.

        Raises:
            BookingTerminalStateError: Booking already reached a final status
            InvalidStatusTransitionError: The party may not cancel in the current status
        """
        target = cancellation_status(request.is_by_customer)
        logger.info(f"Cancelling booking {booking_id} as {target.value}")
        return await self._change_status(
            booking_id,
            target,
            actor_id,
            request.reason,
            timeout,
            reject_terminal=True
        )

    async def _change_status(
        self,
        booking_id: int,
        target: BookingStatus,
        actor_id: Optional[int],
        reason: Optional[str],
        timeout: Optional[float],
        reject_terminal: bool
    ) -> Booking:
        timeout = self._resolve_timeout(timeout)

        booking, old_status = await self._guarded(
            lambda: self._apply_transition(booking_id, target, actor_id, reason, timeout, reject_terminal),
            resource=f"booking {booking_id}",
            timeout=timeout,
            operation="update booking status"
        )

        self._after_commit(booking, StatusChanged(old_status=old_status, new_status=target), actor_id, reason=reason)
        log_business_event(
            "booking_status_changed",
            {
                "booking_id": booking.id,
                "barber_id": booking.barber_id,
                "old_status": old_status.value,
                "new_status": target.value,
            },
            user_id=actor_id
        )
        return booking

    async def _apply_transition(
        self,
        booking_id: int,
        target: BookingStatus,
        actor_id: Optional[int],
        reason: Optional[str],
        timeout: float,
        reject_terminal: bool
    ) -> Tuple[Booking, BookingStatus]:
        async with self.session_factory() as session:
            async with session.begin():
                await bound_lock_wait(session, timeout)
                repo = BookingRepository(session)
                await repo.set_lock_timeout(timeout)
                booking = await self._get_booking(repo, booking_id, for_update=True)
                old_status = booking.status

                if reject_terminal and booking.is_terminal:
                    raise BookingTerminalStateError(booking.id, old_status.value)
                validate_transition(old_status, target)

                now = self.clock()
                booking.status = target
                if target == BookingStatus.IN_PROGRESS:
                    booking.actual_start_time = now
                elif target == BookingStatus.COMPLETED:
                    booking.actual_end_time = now
                elif target in CANCELLATION_STATUSES:
                    booking.cancelled_at = now
                    booking.cancelled_by = actor_id
                    booking.cancellation_reason = reason

                await repo.flush()

        logger.info(f"Booking {booking_id} status changed: {old_status.value} -> {target.value}")
        return booking, old_status

    # Reads

    async def get_booking(self, booking_id: int) -> Booking:
        return await self._read(lambda repo: self._get_booking(repo, booking_id))

    async def get_booking_by_uuid(self, booking_uuid: str) -> Booking:
        async def lookup(repo: BookingRepository) -> Booking:
            booking = await repo.find_by_uuid(booking_uuid)
            if booking is None:
                raise BookingNotFoundError(booking_uuid)
            return booking

        return await self._read(lookup)

    async def get_booking_by_number(self, booking_number: str) -> Booking:
        async def lookup(repo: BookingRepository) -> Booking:
            booking = await repo.find_by_booking_number(booking_number)
            if booking is None:
                raise BookingNotFoundError(booking_number)
            return booking

        return await self._read(lookup)

    async def list_customer_bookings(
        self,
        customer_id: int,
        status: Optional[BookingStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[Booking]:
        return await self._read(
            lambda repo: repo.find_by_customer(customer_id, status, start_date, end_date, limit, offset)
        )

    async def list_barber_bookings(
        self,
        barber_id: int,
        status: Optional[BookingStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[Booking]:
        return await self._read(
            lambda repo: repo.find_by_barber(barber_id, status, start_date, end_date, limit, offset)
        )

    async def get_upcoming_bookings(self, barber_id: int, limit: int = 20) -> List[Booking]:
        now = self.clock()
        return await self._read(lambda repo: repo.find_upcoming(barber_id, now, limit))

    async def get_today_bookings(self, barber_id: int) -> List[Booking]:
        """Bookings starting on the current UTC day, any status."""
        day_start = ensure_utc(self.clock()).replace(hour=0, minute=0, second=0, microsecond=0)
        return await self._read(
            lambda repo: repo.find_by_barber(
                barber_id,
                start_date=day_start,
                end_date=day_start + timedelta(days=1),
                limit=200
            )
        )

    async def get_booking_history(self, booking_id: int) -> List[BookingHistory]:
        async def lookup(repo: BookingRepository) -> List[BookingHistory]:
            await self._get_booking(repo, booking_id)
            return await repo.get_history(booking_id)

        return await self._read(lookup)

    async def get_barber_stats(self, barber_id: int, start_date: datetime, end_date: datetime) -> Dict[str, Any]:
        start_date, end_date = ensure_utc(start_date), ensure_utc(end_date)
        if end_date <= start_date:
            raise ValidationError(
                "end_date must be after start_date",
                field_errors={"end_date": ["must be after start_date"]}
            )
        return await self._read(lambda repo: repo.get_barber_stats(barber_id, start_date, end_date))

    async def check_availability(
        self,
        barber_id: int,
        start_time: datetime,
        duration_minutes: int,
        buffer_minutes: int = 0
    ) -> bool:
        """
        Read-only probe: is ``[start, start + duration)`` free on the barber's timeline?

        ``buffer_minutes`` requires that much free time before and after the slot.
        """
        if duration_minutes <= 0:
            raise ValidationError(
                "duration_minutes must be positive",
                field_errors={"duration_minutes": ["must be positive"]}
            )
        if buffer_minutes < 0:
            raise ValidationError(
                "buffer_minutes must not be negative",
                field_errors={"buffer_minutes": ["must not be negative"]}
            )
        start_time = ensure_utc(start_time)
        end_time = start_time + timedelta(minutes=duration_minutes)
        return await self._read(
            lambda repo: ConflictResolver(repo).is_available(barber_id, start_time, end_time, buffer_minutes)
        )

    async def _get_booking(self, repo: BookingRepository, booking_id: int, for_update: bool = False) -> Booking:
        booking = await repo.find_by_id(booking_id, for_update=for_update)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    async def _read(self, query: Callable[[BookingRepository], Awaitable[T]]) -> T:
        async def run() -> T:
            async with self.session_factory() as session:
                async with session.begin():
                    return await query(BookingRepository(session))

        return await self._guarded(run, resource="booking store", timeout=None, operation="read bookings")

    # Plumbing

    def _resolve_timeout(self, timeout: Optional[float]) -> float:
        return self.settings.lock_wait_timeout_seconds if timeout is None else timeout

    async def _guarded(
        self,
        work: Callable[[], Awaitable[T]],
        resource: str,
        timeout: Optional[float],
        operation: str
    ) -> T:
        """
        Run ``work`` under the caller's deadline and map store failures onto the error taxonomy.

        A deadline that expires while waiting for a lock cancels the work, which
        rolls back its transaction.
        """
        try:
            if timeout is None:
                return await work()
            return await asyncio.wait_for(work(), timeout=timeout)
        except BookingPlatformError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning(f"Deadline of {timeout}s expired during {operation} on {resource}")
            raise LockTimeoutError(resource, timeout) from e
        except IntegrityError as e:
            if "booking_number" in str(e.orig):
                logger.warning(f"Booking number collision during {operation}")
                raise TransientError(
                    "Could not allocate a booking number, please retry",
                    retry_after=self.settings.transient_retry_after_seconds
                ) from e
            logger.error(f"Integrity error during {operation}: {e}")
            raise InternalError("Failed to save booking", operation=operation) from e
        except DBAPIError as e:
            if is_lock_timeout(e):
                logger.warning(f"Lock wait expired during {operation} on {resource}")
                raise LockTimeoutError(resource, timeout) from e
            if e.connection_invalidated:
                logger.error(f"Database connection lost during {operation}")
                raise StoreUnavailableError(retry_after=self.settings.transient_retry_after_seconds) from e
            logger.error(f"Database error during {operation}: {e}")
            raise InternalError(f"Failed to {operation}", operation=operation) from e
        except (PoolTimeoutError, OSError) as e:
            logger.error(f"Booking store unreachable during {operation}: {e}")
            raise StoreUnavailableError(retry_after=self.settings.transient_retry_after_seconds) from e
        except SQLAlchemyError as e:
            logger.error(f"Unexpected database error during {operation}: {e}")
            raise InternalError(f"Failed to {operation}", operation=operation) from e

    def _after_commit(
        self,
        booking: Booking,
        delta,
        actor_id: Optional[int],
        reason: Optional[str] = None,
        invalidate_cache: bool = True
    ) -> None:
        """Schedule the history entry and cache invalidation for a committed change."""
        booking_id, barber_id = booking.id, booking.barber_id
        # Stamped inside the transaction that held the booking row
        recorded_at = booking.updated_at

        self.effects.submit(
            f"history:{delta.change_type}:{booking_id}",
            lambda: self.history.record(
                booking_id, delta, changed_by=actor_id, reason=reason, recorded_at=recorded_at
            ),
            key=f"history:{booking_id}"
        )
        if invalidate_cache:
            self.effects.submit(
                f"cache:barber:{barber_id}",
                lambda: self.cache_invalidator.invalidate_barber(barber_id)
            )
