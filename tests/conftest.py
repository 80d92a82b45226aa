import pytest
from fastapi.testclient import TestClient

from scheduler_api.config import Settings
from scheduler_api.db.repository import InMemoryStore
from scheduler_api.db.seed import SLOT_TIMES
from scheduler_api.main import create_app
from scheduler_api.schemas import Appointment, DayRecord, Interview, Interviewer, SeedData


def build_seed() -> SeedData:
    """Two days of five slots. Slot 1 is booked, everything else is free."""
    return SeedData(
        days=[
            DayRecord(id=1, name="Monday", appointments=[1, 2, 3, 4, 5], interviewers=[1, 2]),
            DayRecord(id=2, name="Tuesday", appointments=[6, 7, 8, 9, 10], interviewers=[2, 3]),
        ],
        appointments=[
            Appointment(
                id=1, time="12pm", interview=Interview(student="Lydia Miller-Jones", interviewer=1)
            ),
            *[
                Appointment(id=slot, time=SLOT_TIMES[(slot - 1) % 5])
                for slot in range(2, 11)
            ],
        ],
        interviewers=[
            Interviewer(id=1, name="Sylvia Palmer", avatar="https://i.imgur.com/LpaY82x.png"),
            Interviewer(id=2, name="Tori Malcolm", avatar="https://i.imgur.com/Nmx0Qxo.png"),
            Interviewer(id=3, name="Mildred Nazir", avatar="https://i.imgur.com/T2WwVfS.png"),
        ],
    )


def make_settings(**overrides) -> Settings:
    values = {
        "environment": "test",
        "store_backend": "memory",
        "force_write_failure": False,
        "store_timeout_seconds": 2.0,
        "ws_queue_size": 100,
        "log_level": "INFO",
        "cors_origins": "*",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def seed():
    return build_seed()


@pytest.fixture
def store(seed):
    return InMemoryStore(seed)


@pytest.fixture
def client(store):
    app = create_app(make_settings(), store=store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def app_factory():
    def _create(store=None, **overrides):
        return create_app(make_settings(**overrides), store=store or InMemoryStore(build_seed()))

    return _create
