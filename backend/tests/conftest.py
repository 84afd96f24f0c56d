from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import inpwatch.models  # noqa: F401
from inpwatch.config import Settings
from inpwatch.database import Base
from inpwatch.schemas.events import RawEventIn
from inpwatch.services.event_store import EventStore
from inpwatch.services.rollup_store import RollupStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def config() -> Settings:
    return Settings(_env_file=None, environment="test")


def make_event(
    timestamp: datetime,
    latency: int,
    selector: str = "#buy-btn",
    page_url: str = "/checkout",
    device: str = "desktop",
    long_task_ms: Optional[int] = None,
) -> RawEventIn:
    return RawEventIn(
        timestamp=timestamp,
        page_url=page_url,
        interaction_type="click",
        target_selector=selector,
        interaction_latency_ms=latency,
        long_task_ms=long_task_ms,
        device_class=device,
    )


@pytest.fixture
def seed(session_factory):
    """Insert events through the event store; returns the stored count."""

    def _seed(events: Iterable[RawEventIn]) -> int:
        session = session_factory()
        try:
            return EventStore(session).insert_raw_events(events)
        finally:
            session.close()

    return _seed


@pytest.fixture
def seed_rollups(session_factory):
    def _seed(rows: Iterable[dict]) -> None:
        session = session_factory()
        try:
            RollupStore(session).upsert_many(list(rows))
            session.commit()
        finally:
            session.close()

    return _seed


def rollup_row(day: date, selector: str = "#buy-btn", page_path: str = "/checkout", **stats) -> dict:
    values = {"p50": 100, "p75": 150, "p95": 200, "count": 5, "worst": 250}
    values.update(stats)
    return {
        "day": day,
        "page_path": page_path,
        "target_selector": selector,
        "device_class": "desktop",
        **values,
    }
