"""Shared fixtures for the pipeline tests."""

import uuid

import pytest
import pytest_asyncio

from candidate_pipeline.db import ApplicationStore, JobModel, create_engine, create_session_factory, init_db
from candidate_pipeline.pipeline.schemas import JobRecord
from tests.fakes import FakeAnalysis, FakeDevices, FakeStorage


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}")
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> ApplicationStore:
    return ApplicationStore(session_factory)


@pytest_asyncio.fixture
async def job(session_factory) -> JobRecord:
    async with session_factory() as session:
        model = JobModel(
            id=uuid.uuid4(),
            recruiter_id=uuid.uuid4(),
            title="Backend Engineer",
            description="Build and run the hiring platform APIs.",
            essential_attributes=["Python", "PostgreSQL"],
            good_candidate_attributes="Owns production services",
            bad_candidate_attributes="Avoids code review",
            status="published",
        )
        session.add(model)
        await session.commit()
        return JobRecord.model_validate(model)


@pytest.fixture
def candidate_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_analysis() -> FakeAnalysis:
    return FakeAnalysis()


@pytest.fixture
def fake_devices() -> FakeDevices:
    return FakeDevices()
