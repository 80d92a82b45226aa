import asyncio
import time

import pytest

from scheduler_api.booking import BookingService
from scheduler_api.db.repository import FailingStore, InMemoryStore
from scheduler_api.errors import Forbidden, NotFound, StorageFailure, ValidationFailure
from scheduler_api.schemas import Interview


class RecordingHub:
    def __init__(self) -> None:
        self.events = []

    async def broadcast(self, event) -> None:
        self.events.append(event)


class BrokenHub:
    async def broadcast(self, event) -> None:
        raise RuntimeError("socket layer exploded")


class SlowStore(InMemoryStore):
    def list_appointments(self):
        time.sleep(0.3)
        return super().list_appointments()


class SlowWriteStore(InMemoryStore):
    def __init__(self, seed, delay):
        super().__init__(seed)
        self.delay = delay
        self.active_writes = 0
        self.most_concurrent_writes = 0

    def set_appointment_interview(self, appointment_id, interview):
        self.active_writes += 1
        self.most_concurrent_writes = max(self.most_concurrent_writes, self.active_writes)
        try:
            time.sleep(self.delay)
            return super().set_appointment_interview(appointment_id, interview)
        finally:
            self.active_writes -= 1


class FlakyStore(InMemoryStore):
    def set_appointment_interview(self, appointment_id, interview):
        raise OSError("connection reset by peer")


def snapshot(store):
    return [appointment.model_dump() for appointment in store.list_appointments()]


@pytest.fixture
def hub():
    return RecordingHub()


@pytest.fixture
def service(store, hub):
    return BookingService(store, hub, store_timeout=2.0)


ARCHIE = Interview(student="Archie Cohen", interviewer=2)


@pytest.mark.asyncio
async def test_upsert_books_only_the_target_slot(service, store, hub):
    before = {appt["id"]: appt for appt in snapshot(store)}

    updated = await service.upsert_appointment(3, ARCHIE)

    assert updated.interview == ARCHIE
    after = {appt["id"]: appt for appt in snapshot(store)}
    assert after[3]["interview"] == {"student": "Archie Cohen", "interviewer": 2}
    for appointment_id, record in before.items():
        if appointment_id != 3:
            assert after[appointment_id] == record
    assert [(event.id, event.interview) for event in hub.events] == [(3, ARCHIE)]
    assert hub.events[0].type == "SET_INTERVIEW"


@pytest.mark.asyncio
async def test_spots_follow_every_mutation(service):
    days = {day.name: day for day in await service.list_days()}
    assert days["Monday"].spots == 4
    assert days["Tuesday"].spots == 5

    await service.upsert_appointment(3, ARCHIE)
    await service.upsert_appointment(7, Interview(student="Yuko Smith", interviewer=3))
    days = {day.name: day for day in await service.list_days()}
    assert days["Monday"].spots == 3
    assert days["Tuesday"].spots == 4

    await service.delete_appointment(1)
    days = {day.name: day for day in await service.list_days()}
    assert days["Monday"].spots == 4


@pytest.mark.asyncio
async def test_clearing_an_empty_slot_is_a_no_op(service, store, hub):
    before = snapshot(store)

    await service.delete_appointment(4)
    await service.delete_appointment(4)

    assert snapshot(store) == before
    assert [(event.id, event.interview) for event in hub.events] == [(4, None), (4, None)]


@pytest.mark.asyncio
async def test_upsert_with_no_interview_clears_the_slot(service, store, hub):
    updated = await service.upsert_appointment(1, None)

    assert updated.interview is None
    assert store.get_appointment(1).interview is None
    assert hub.events[-1].interview is None


@pytest.mark.asyncio
async def test_repeated_upsert_is_idempotent_but_still_announced(service, store, hub):
    await service.upsert_appointment(3, ARCHIE)
    state = snapshot(store)
    await service.upsert_appointment(3, ARCHIE)

    assert snapshot(store) == state
    assert len(hub.events) == 2


@pytest.mark.asyncio
async def test_forced_failure_leaves_store_untouched(store, hub):
    service = BookingService(FailingStore(store), hub)
    before = snapshot(store)

    with pytest.raises(StorageFailure):
        await service.upsert_appointment(5, ARCHIE)
    with pytest.raises(StorageFailure):
        await service.delete_appointment(1)

    assert snapshot(store) == before
    assert hub.events == []


@pytest.mark.parametrize(
    "appointment_id, interview, error",
    [
        (99, ARCHIE, NotFound),
        (3, Interview(student="Archie Cohen", interviewer=3), ValidationFailure),
        (3, Interview(student="Archie Cohen", interviewer=42), ValidationFailure),
    ],
)
@pytest.mark.asyncio
async def test_rejected_bookings_change_nothing(service, store, hub, appointment_id, interview, error):
    before = snapshot(store)

    with pytest.raises(error):
        await service.upsert_appointment(appointment_id, interview)

    assert snapshot(store) == before
    assert hub.events == []


@pytest.mark.asyncio
async def test_delete_unknown_slot_is_not_found(service, hub):
    with pytest.raises(NotFound):
        await service.delete_appointment(1000)
    assert hub.events == []


@pytest.mark.asyncio
async def test_store_errors_surface_as_storage_failure(seed, hub):
    service = BookingService(FlakyStore(seed), hub)

    with pytest.raises(StorageFailure):
        await service.upsert_appointment(3, ARCHIE)
    assert hub.events == []


@pytest.mark.asyncio
async def test_slow_store_times_out(seed, hub):
    service = BookingService(SlowStore(seed), hub, store_timeout=0.05)

    with pytest.raises(StorageFailure):
        await service.list_appointments()


@pytest.mark.asyncio
async def test_broadcast_failure_does_not_fail_the_booking(store):
    service = BookingService(store, BrokenHub())

    updated = await service.upsert_appointment(3, ARCHIE)

    assert updated.interview == ARCHIE
    assert store.get_appointment(3).interview == ARCHIE


@pytest.mark.asyncio
async def test_reset_is_forbidden_in_production(store, hub, seed):
    service = BookingService(store, hub, production=True, seed_factory=lambda: seed)
    await service.upsert_appointment(3, ARCHIE)
    before = snapshot(store)

    with pytest.raises(Forbidden):
        await service.reset_to_seed()

    assert snapshot(store) == before


@pytest.mark.asyncio
async def test_reset_reloads_the_seed(store, hub, seed):
    service = BookingService(store, hub, seed_factory=lambda: seed)
    await service.upsert_appointment(3, ARCHIE)

    await service.reset_to_seed()

    assert store.get_appointment(3).interview is None
    assert store.get_appointment(1).interview is not None


@pytest.mark.asyncio
async def test_lookups_are_keyed_by_id(service):
    appointments = await service.list_appointments()
    interviewers = await service.list_interviewers()

    assert sorted(appointments) == list(range(1, 11))
    assert interviewers[2].name == "Tori Malcolm"


@pytest.mark.asyncio
async def test_slow_write_is_awaited_and_announced(seed, hub):
    store = SlowWriteStore(seed, delay=0.3)
    service = BookingService(store, hub, store_timeout=0.1)

    updated = await service.upsert_appointment(3, ARCHIE)

    assert updated.interview == ARCHIE
    assert store.get_appointment(3).interview == ARCHIE
    assert [(event.id, event.interview) for event in hub.events] == [(3, ARCHIE)]


@pytest.mark.asyncio
async def test_concurrent_mutations_on_one_slot_do_not_interleave(seed, hub):
    store = SlowWriteStore(seed, delay=0.02)
    service = BookingService(store, hub, store_timeout=2.0)
    yuko = Interview(student="Yuko Smith", interviewer=1)

    await asyncio.gather(
        service.upsert_appointment(3, ARCHIE),
        service.delete_appointment(3),
        service.upsert_appointment(3, yuko),
        service.delete_appointment(3),
        service.upsert_appointment(3, ARCHIE),
    )

    assert store.most_concurrent_writes == 1
    assert len(hub.events) == 5
    assert all(event.id == 3 for event in hub.events)
    assert store.get_appointment(3).interview == hub.events[-1].interview
