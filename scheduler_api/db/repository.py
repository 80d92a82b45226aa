from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from ..config import Settings
from ..errors import NotFound, StorageFailure
from ..schemas import Appointment, DayRecord, Interview, Interviewer, SeedData
from .seed import generate_seed

logger = logging.getLogger(__name__)


class Store(Protocol):
    def get_day(self, day_id: int) -> DayRecord:
        ...

    def list_days(self) -> list[DayRecord]:
        ...

    def get_appointment(self, appointment_id: int) -> Appointment:
        ...

    def list_appointments(self) -> list[Appointment]:
        ...

    def set_appointment_interview(
        self, appointment_id: int, interview: Optional[Interview]
    ) -> Appointment:
        ...

    def list_interviewers(self) -> list[Interviewer]:
        ...

    def reseed(self, seed: SeedData) -> None:
        ...


class InMemoryStore:
    """Process-local store. Every call holds one lock, which makes it atomic."""

    def __init__(self, seed: Optional[SeedData] = None) -> None:
        self._lock = threading.Lock()
        self.days: dict[int, DayRecord] = {}
        self.appointments: dict[int, Appointment] = {}
        self.interviewers: dict[int, Interviewer] = {}
        self.reseed(seed or generate_seed())

    def get_day(self, day_id: int) -> DayRecord:
        with self._lock:
            if day_id not in self.days:
                raise NotFound(f"day {day_id} does not exist")
            return self.days[day_id].model_copy(deep=True)

    def list_days(self) -> list[DayRecord]:
        with self._lock:
            return [day.model_copy(deep=True) for day in self.days.values()]

    def get_appointment(self, appointment_id: int) -> Appointment:
        with self._lock:
            if appointment_id not in self.appointments:
                raise NotFound(f"appointment {appointment_id} does not exist")
            return self.appointments[appointment_id].model_copy(deep=True)

    def list_appointments(self) -> list[Appointment]:
        with self._lock:
            return [appt.model_copy(deep=True) for appt in self.appointments.values()]

    def set_appointment_interview(
        self, appointment_id: int, interview: Optional[Interview]
    ) -> Appointment:
        with self._lock:
            current = self.appointments.get(appointment_id)
            if current is None:
                raise NotFound(f"appointment {appointment_id} does not exist")
            updated = current.model_copy(
                update={"interview": interview.model_copy() if interview else None}
            )
            self.appointments[appointment_id] = updated
            return updated.model_copy(deep=True)

    def list_interviewers(self) -> list[Interviewer]:
        with self._lock:
            return [interviewer.model_copy() for interviewer in self.interviewers.values()]

    def reseed(self, seed: SeedData) -> None:
        seed = seed.model_copy(deep=True)
        with self._lock:
            self.days = {day.id: day for day in seed.days}
            self.appointments = {appt.id: appt for appt in seed.appointments}
            self.interviewers = {interviewer.id: interviewer for interviewer in seed.interviewers}


class SupabaseStore:
    """Store backed by Supabase tables.

    ``appointments`` carries the interview inline (``student``,
    ``interviewer_id``) so booking or clearing a slot is one row update.
    Day eligibility lives in ``available_interviewers``.
    """

    def __init__(self, client) -> None:
        self.client = client

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except Exception as exc:
            logger.error("Supabase %s failed: %s", action, exc)
            raise StorageFailure(f"{action} failed") from exc

    @staticmethod
    def _appointment(row: dict) -> Appointment:
        interview = None
        if row.get("student") and row.get("interviewer_id") is not None:
            interview = Interview(student=row["student"], interviewer=row["interviewer_id"])
        return Appointment(id=row["id"], time=row.get("time"), interview=interview)

    def _days(self, day_id: Optional[int] = None) -> list[DayRecord]:
        days_query = self.client.table("days").select("*").order("id")
        slots_query = self.client.table("appointments").select("id, day_id").order("id")
        eligible_query = self.client.table("available_interviewers").select("*")
        if day_id is not None:
            days_query = days_query.eq("id", day_id)
            slots_query = slots_query.eq("day_id", day_id)
            eligible_query = eligible_query.eq("day_id", day_id)
        days = self._execute(days_query, "list days").data or []
        slots = self._execute(slots_query, "list day slots").data or []
        eligible = self._execute(eligible_query, "list day interviewers").data or []
        return [
            DayRecord(
                id=row["id"],
                name=row["name"],
                appointments=[slot["id"] for slot in slots if slot["day_id"] == row["id"]],
                interviewers=sorted(
                    link["interviewer_id"] for link in eligible if link["day_id"] == row["id"]
                ),
            )
            for row in days
        ]

    def get_day(self, day_id: int) -> DayRecord:
        days = self._days(day_id)
        if not days:
            raise NotFound(f"day {day_id} does not exist")
        return days[0]

    def list_days(self) -> list[DayRecord]:
        return self._days()

    def get_appointment(self, appointment_id: int) -> Appointment:
        response = self._execute(
            self.client.table("appointments").select("*").eq("id", appointment_id),
            "get appointment",
        )
        if not response.data:
            raise NotFound(f"appointment {appointment_id} does not exist")
        return self._appointment(response.data[0])

    def list_appointments(self) -> list[Appointment]:
        response = self._execute(
            self.client.table("appointments").select("*").order("id"), "list appointments"
        )
        return [self._appointment(row) for row in response.data or []]

    def set_appointment_interview(
        self, appointment_id: int, interview: Optional[Interview]
    ) -> Appointment:
        payload = {
            "student": interview.student if interview else None,
            "interviewer_id": interview.interviewer if interview else None,
        }
        response = self._execute(
            self.client.table("appointments").update(payload).eq("id", appointment_id),
            "update appointment",
        )
        if not response.data:
            raise NotFound(f"appointment {appointment_id} does not exist")
        return self._appointment(response.data[0])

    def list_interviewers(self) -> list[Interviewer]:
        response = self._execute(
            self.client.table("interviewers").select("*").order("id"), "list interviewers"
        )
        return [Interviewer(**row) for row in response.data or []]

    def reseed(self, seed: SeedData) -> None:
        table = self.client.table
        self._execute(table("available_interviewers").delete().gte("day_id", 0), "clear eligibility")
        self._execute(table("appointments").delete().gte("id", 0), "clear appointments")
        self._execute(table("interviewers").delete().gte("id", 0), "clear interviewers")
        self._execute(table("days").delete().gte("id", 0), "clear days")

        self._execute(
            table("days").insert([{"id": day.id, "name": day.name} for day in seed.days]),
            "insert days",
        )
        self._execute(
            table("interviewers").insert([i.model_dump() for i in seed.interviewers]),
            "insert interviewers",
        )
        day_of = {slot: day.id for day in seed.days for slot in day.appointments}
        self._execute(
            table("appointments").insert(
                [
                    {
                        "id": appt.id,
                        "day_id": day_of[appt.id],
                        "time": appt.time,
                        "student": appt.interview.student if appt.interview else None,
                        "interviewer_id": appt.interview.interviewer if appt.interview else None,
                    }
                    for appt in seed.appointments
                ]
            ),
            "insert appointments",
        )
        self._execute(
            table("available_interviewers").insert(
                [
                    {"day_id": day.id, "interviewer_id": interviewer_id}
                    for day in seed.days
                    for interviewer_id in day.interviewers
                ]
            ),
            "insert eligibility",
        )


class FailingStore:
    """Wraps a store so that every booking write fails with StorageFailure."""

    def __init__(self, inner: Store) -> None:
        self.inner = inner

    def get_day(self, day_id: int) -> DayRecord:
        return self.inner.get_day(day_id)

    def list_days(self) -> list[DayRecord]:
        return self.inner.list_days()

    def get_appointment(self, appointment_id: int) -> Appointment:
        return self.inner.get_appointment(appointment_id)

    def list_appointments(self) -> list[Appointment]:
        return self.inner.list_appointments()

    def set_appointment_interview(
        self, appointment_id: int, interview: Optional[Interview]
    ) -> Appointment:
        raise StorageFailure("forced write failure is enabled")

    def list_interviewers(self) -> list[Interviewer]:
        return self.inner.list_interviewers()

    def reseed(self, seed: SeedData) -> None:
        self.inner.reseed(seed)


def build_store(settings: Settings) -> Store:
    backend = settings.store_backend.lower()
    if backend == "memory":
        store: Store = InMemoryStore()
    elif backend == "supabase":
        supabase_url, supabase_key = settings.database_credentials
        if not supabase_url or not supabase_key:
            raise ValueError(
                f"Missing Supabase configuration for {settings.environment} "
                "(SUPABASE_URL/SUPABASE_KEY or TEST_SUPABASE_URL/TEST_SUPABASE_KEY)."
            )

        from supabase import ClientOptions, create_client

        # The HTTP client bounds every call, writes included.
        options = ClientOptions(postgrest_client_timeout=settings.store_timeout_seconds)
        store = SupabaseStore(create_client(supabase_url, supabase_key, options=options))
    else:
        raise ValueError(f"Unknown STORE_BACKEND {settings.store_backend!r}")

    if settings.force_write_failure:
        logger.warning("Forced write failure is enabled; all bookings will fail")
        store = FailingStore(store)
    return store
