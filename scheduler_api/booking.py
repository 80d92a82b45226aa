from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, TypeVar

from .db.repository import Store
from .db.seed import generate_seed
from .errors import BookingError, Forbidden, NotFound, StorageFailure, ValidationFailure
from .hub import NotificationHub
from .schemas import Appointment, Day, DayRecord, Interview, Interviewer, SeedData, SetInterviewEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_days(days: list[DayRecord], appointments: list[Appointment]) -> list[Day]:
    """Attach the number of free slots to each day."""
    by_id = {appointment.id: appointment for appointment in appointments}
    return [
        Day(
            **day.model_dump(),
            spots=sum(
                1
                for slot in day.appointments
                if slot in by_id and by_id[slot].interview is None
            ),
        )
        for day in days
    ]


class BookingService:
    """Applies bookings to the store and announces them to live viewers.

    Holds no appointment state: every mutation re-reads what it validates
    against. Mutations are serialized by one writer lock; reads are not.
    """

    def __init__(
        self,
        store: Store,
        hub: NotificationHub,
        *,
        production: bool = False,
        store_timeout: float = 5.0,
        seed_factory: Callable[[], SeedData] = generate_seed,
    ) -> None:
        self.store = store
        self.hub = hub
        self.production = production
        self.store_timeout = store_timeout
        self.seed_factory = seed_factory
        self._write_lock = asyncio.Lock()

    async def _call(self, fn: Callable[..., T], *args) -> T:
        name = getattr(fn, "__name__", "store call")
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), self.store_timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Store call %s timed out after %ss", name, self.store_timeout)
            raise StorageFailure(f"{name} timed out") from exc
        except BookingError:
            raise
        except Exception as exc:
            logger.exception("Store call %s failed", name)
            raise StorageFailure(f"{name} failed") from exc

    async def _write(self, fn: Callable[..., T], *args) -> T:
        """Run a store write to completion.

        Writes are never abandoned mid-flight: the caller holds the writer
        lock until the backend answers, and the backend bounds its own
        latency (see ``build_store``).
        """
        name = getattr(fn, "__name__", "store write")
        try:
            return await asyncio.to_thread(fn, *args)
        except BookingError:
            raise
        except Exception as exc:
            logger.exception("Store write %s failed", name)
            raise StorageFailure(f"{name} failed") from exc

    async def list_days(self) -> list[Day]:
        days, appointments = await asyncio.gather(
            self._call(self.store.list_days),
            self._call(self.store.list_appointments),
        )
        return compute_days(days, appointments)

    async def list_appointments(self) -> dict[int, Appointment]:
        appointments = await self._call(self.store.list_appointments)
        return {appointment.id: appointment for appointment in appointments}

    async def list_interviewers(self) -> dict[int, Interviewer]:
        interviewers = await self._call(self.store.list_interviewers)
        return {interviewer.id: interviewer for interviewer in interviewers}

    async def _validate(self, appointment_id: int, interview: Interview) -> None:
        days = await self._call(self.store.list_days)
        day = next((day for day in days if appointment_id in day.appointments), None)
        if day is None:
            raise NotFound(f"appointment {appointment_id} belongs to no day")
        interviewers = await self.list_interviewers()
        if interview.interviewer not in interviewers:
            raise ValidationFailure(f"interviewer {interview.interviewer} does not exist")
        if interview.interviewer not in day.interviewers:
            raise ValidationFailure(
                f"interviewer {interview.interviewer} is not available on {day.name}"
            )

    async def upsert_appointment(
        self, appointment_id: int, interview: Optional[Interview]
    ) -> Appointment:
        if interview is None:
            return await self.delete_appointment(appointment_id)
        async with self._write_lock:
            await self._call(self.store.get_appointment, appointment_id)
            await self._validate(appointment_id, interview)
            updated = await self._write(
                self.store.set_appointment_interview, appointment_id, interview
            )
            logger.info(
                "Booked appointment %s with interviewer %s", appointment_id, interview.interviewer
            )
            await self._notify(updated)
        return updated

    async def delete_appointment(self, appointment_id: int) -> Appointment:
        async with self._write_lock:
            await self._call(self.store.get_appointment, appointment_id)
            updated = await self._write(self.store.set_appointment_interview, appointment_id, None)
            logger.info("Cleared appointment %s", appointment_id)
            await self._notify(updated)
        return updated

    async def reset_to_seed(self) -> None:
        if self.production:
            raise Forbidden("reset is disabled in production")
        async with self._write_lock:
            await self._write(self.store.reseed, self.seed_factory())
        logger.info("Store reset to a fresh seed")

    async def _notify(self, appointment: Appointment) -> None:
        event = SetInterviewEvent(id=appointment.id, interview=appointment.interview)
        try:
            await self.hub.broadcast(event)
        except Exception:
            # Delivery problems never change the outcome of a booking.
            logger.exception("Broadcast of appointment %s failed", appointment.id)
