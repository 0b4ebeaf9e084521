"""Tests for lock-timeout classification and provider-scoped locking."""

from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import DBAPIError, OperationalError

from barber_booking_platform.repositories.booking_repository import BookingRepository
from barber_booking_platform.services.conflict_resolver import ConflictResolver, is_lock_timeout
from barber_booking_platform.utils.exceptions import BarberNotFoundError, LockTimeoutError

from conftest import at


class PgError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def db_error(orig, cls=DBAPIError):
    return cls("SELECT 1", None, orig)


class RecordingSession:
    """Stands in for an AsyncSession and keeps every executed statement."""

    def __init__(self, dialect="postgresql", row=1):
        self.dialect = dialect
        self.row = row
        self.statements = []

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name=self.dialect))

    async def execute(self, statement):
        self.statements.append(statement)
        return SimpleNamespace(scalar_one_or_none=lambda: self.row)


def compiled(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


class TestIsLockTimeout:
    def test_postgres_lock_not_available(self):
        assert is_lock_timeout(db_error(PgError("could not get lock", sqlstate="55P03")))

    def test_postgres_lock_timeout_message(self):
        assert is_lock_timeout(db_error(PgError("canceling statement due to lock timeout")))

    def test_sqlite_busy(self):
        assert is_lock_timeout(db_error(Exception("database is locked"), cls=OperationalError))

    def test_other_database_errors(self):
        assert not is_lock_timeout(db_error(PgError("deadlock detected", sqlstate="40P01")))

    def test_non_database_errors(self):
        assert not is_lock_timeout(RuntimeError("lock timeout"))


class TestPostgresLocking:
    async def test_barber_row_lock_is_bounded(self):
        session = RecordingSession()

        assert await BookingRepository(session).lock_barber_timeline(3, timeout=0.25)

        set_timeout, lock = session.statements
        assert str(set_timeout) == "SET LOCAL lock_timeout = '250ms'"
        assert "FOR UPDATE" in compiled(lock)
        assert "barbers" in compiled(lock)

    async def test_sub_millisecond_timeout_rounds_up(self):
        session = RecordingSession()
        await BookingRepository(session).set_lock_timeout(0.0001)
        assert str(session.statements[0]) == "SET LOCAL lock_timeout = '1ms'"

    async def test_no_timeout_leaves_server_default(self):
        session = RecordingSession()
        await BookingRepository(session).lock_barber_timeline(3)

        assert len(session.statements) == 1
        assert "FOR UPDATE" in compiled(session.statements[0])

    async def test_sqlite_only_checks_existence(self):
        session = RecordingSession(dialect="sqlite")
        await BookingRepository(session).lock_barber_timeline(3, timeout=0.25)

        assert len(session.statements) == 1
        assert "FOR UPDATE" not in compiled(session.statements[0])


class FakeRepository:
    def __init__(self, error=None, found=True, conflict=False):
        self.error = error
        self.found = found
        self.conflict = conflict
        self.checked = []

    async def lock_barber_timeline(self, barber_id, timeout=None):
        if self.error is not None:
            raise self.error
        return self.found

    async def check_conflict(self, barber_id, start_time, end_time, exclude_booking_id=None):
        self.checked.append((start_time, end_time))
        return self.conflict


class TestAcquire:
    async def test_lock_wait_expiry(self):
        repo = FakeRepository(error=db_error(PgError("lock timeout", sqlstate="55P03")))

        with pytest.raises(LockTimeoutError) as exc_info:
            await ConflictResolver(repo).acquire(3, timeout=0.5)

        assert exc_info.value.details == {"resource": "barber 3", "timeout_seconds": 0.5}

    async def test_other_errors_propagate(self):
        repo = FakeRepository(error=db_error(PgError("syntax error", sqlstate="42601")))

        with pytest.raises(DBAPIError):
            await ConflictResolver(repo).acquire(3)

    async def test_missing_barber(self):
        with pytest.raises(BarberNotFoundError):
            await ConflictResolver(FakeRepository(found=False)).acquire(3)


class TestBufferedAvailability:
    async def test_buffer_widens_both_sides(self):
        repo = FakeRepository()
        start, end = at(hours=2), at(hours=2.5)

        assert await ConflictResolver(repo).is_available(3, start, end, buffer_minutes=15)

        assert repo.checked == [(start - timedelta(minutes=15), end + timedelta(minutes=15))]

    async def test_no_buffer_by_default(self):
        repo = FakeRepository(conflict=True)
        start, end = at(hours=2), at(hours=2.5)

        assert not await ConflictResolver(repo).is_available(3, start, end)

        assert repo.checked == [(start, end)]
