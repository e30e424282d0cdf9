"""
Pytest configuration and fixtures for Pulse API tests.
"""
import asyncio
import random
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import get_password_hash, create_access_token
from app.config import Settings
from app.database import Base
from app.generation.adapter import GenerationResult
from app.generation.orchestrator import GenerationOrchestrator
from app.generation.publisher import PostPublisher
from app.limiter import limiter
from app.main import create_app
from app.models.agent import Agent
from app.models.theme import Theme
from app.models.user import User
from app.scheduler.service import GenerationService
from app.scheduler.state_machine import JobStateController
from app.scheduler.store import ScheduleStore

# Disable rate limiting for tests
limiter.enabled = False

# Friday 2024-03-01 10:00 UTC
START = datetime(2024, 3, 1, 10, 0)

# Returned by FakeAdapter when told to hang until the caller times out.
HANG = object()


class FakeClock:
    """Settable replacement for utcnow()."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


class FakeAdapter:
    """Scripted generator: pops one outcome per call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.closed = False

    async def generate(self, prompt, theme_metadata=None):
        self.calls.append({"prompt": prompt, "theme": theme_metadata})
        outcome = self.outcomes.pop(0) if self.outcomes else make_result()
        if outcome is HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self):
        self.closed = True


def make_result(title="Generated Post", **overrides) -> GenerationResult:
    data = {
        "title": title,
        "summary": "A short summary.",
        "content_markdown": "# Heading\n\nBody text.",
        "tags": ["marketing"],
        "cover_image_url": "https://img.example.com/cover.png",
        "estimated_read_time_minutes": 4,
    }
    data.update(overrides)
    return GenerationResult(**data)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def engine():
    """Fresh in-memory database per test, shared across sessions."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed database for tests where threads need their own connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pulse-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def store(session_factory, clock):
    return ScheduleStore(session_factory, now_fn=clock)


@pytest.fixture
def controller(store, clock):
    return JobStateController(store, now_fn=clock)


@pytest.fixture
def publisher(session_factory, controller, clock):
    return PostPublisher(session_factory, controller, now_fn=clock)


@pytest.fixture
def make_orchestrator(session_factory, store, controller, publisher, sleep, clock):
    def build(adapter, **options):
        options.setdefault("rng", random.Random(42))
        return GenerationOrchestrator(
            session_factory,
            store,
            controller,
            adapter,
            publisher,
            sleep=sleep,
            now_fn=clock,
            **options,
        )
    return build


@pytest.fixture
def theme(db):
    theme = Theme(
        name="Digital Marketing",
        prompt="Write a blog post about digital marketing for small businesses.",
        description="Practical marketing advice",
        keywords=["seo", "social media"],
        tone="friendly",
        target_audience="small business owners",
        guidelines="Use short paragraphs.",
        active=True,
    )
    db.add(theme)
    db.commit()
    db.refresh(theme)
    return theme


@pytest.fixture
def agent(db):
    agent = Agent(
        name="Blog Writer",
        agent_id="blog-writer",
        endpoint="https://agents.example.com/rpc",
        api_key="sk-secret-key",
        active=True,
    )
    db.add(agent)
    db.commit()
    db.refresh(agent)
    return agent


@pytest.fixture
def settings():
    return Settings(
        scheduler_autostart=False,
        scheduler_timezone="UTC",
        generation_slots="08:00,14:00,20:00",
        auto_generation_enabled=True,
        generation_timeout_seconds=0.2,
    )


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def service(session_factory, settings, fake_adapter, sleep, clock):
    """Unstarted service; tests start and stop it inside their own event loop."""
    return GenerationService(
        session_factory,
        settings,
        adapter=fake_adapter,
        rng=random.Random(7),
        sleep=sleep,
        now_fn=clock,
    )


@pytest.fixture
def app(engine, settings, fake_adapter, sleep, clock):
    return create_app(
        settings=settings,
        engine=engine,
        adapter=fake_adapter,
        rng=random.Random(7),
        sleep=sleep,
        now_fn=clock,
    )


@pytest.fixture
def client(app):
    """Create a test client; entering it runs the app lifespan."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_user(db):
    user = User(
        email="admin@example.com",
        hashed_password=get_password_hash("adminpassword123"),
        display_name="Admin",
        is_active=True,
        is_admin=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user(db):
    """A non-admin user."""
    user = User(
        email="test@example.com",
        hashed_password=get_password_hash("testpassword123"),
        display_name="Test User",
        is_active=True,
        is_admin=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(admin_user):
    """Bearer headers for the admin user."""
    token = create_access_token({"sub": str(admin_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(test_user):
    token = create_access_token({"sub": str(test_user.id)})
    return {"Authorization": f"Bearer {token}"}
