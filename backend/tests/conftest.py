"""
Pytest configuration and fixtures for backend tests.
"""
from typing import AsyncGenerator, Callable, List
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import ledgervote.models  # noqa: F401
from ledgervote.core.config import settings
from ledgervote.core.database import Base, get_db
from ledgervote.core.security import normalize_identity
from ledgervote.ledger.client import LedgerClient
from ledgervote.main import create_application
from ledgervote.schemas.ledger import (
    CandidateList,
    ClockView,
    ResultsTable,
    RolesView,
    TransactionReceipt,
    VotingPeriodView,
)
from ledgervote.services.identity import LocalWalletSession
from ledgervote.services.ledger_service import ElectionLedgerService, LedgerSequencer
from ledgervote.services.retry import RetryPolicy


OWNER = normalize_identity(settings.LEDGER_OWNER)
ADMIN = "0x" + "a" * 40
VOTER = "0x" + "b" * 40
OTHER_VOTER = "0x" + "c" * 40
OUTSIDER = "0x" + "d" * 40

T0 = 1_700_000_000


class FakeClock:
    """Adjustable clock returning unix seconds."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def ledger_clock() -> FakeClock:
    """The ledger host's clock."""
    return FakeClock()


@pytest.fixture
def local_clock() -> FakeClock:
    """The client's wall clock, starts in step with the ledger."""
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Sleep double that returns immediately and records each delay."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest_asyncio.fixture(scope="function")
async def session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """A fresh SQLite ledger database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_db(session_maker: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def sequencer(ledger_clock: FakeClock) -> LedgerSequencer:
    return LedgerSequencer(clock=ledger_clock)


@pytest.fixture
def ledger_service(test_db: AsyncSession, sequencer: LedgerSequencer) -> ElectionLedgerService:
    return ElectionLedgerService(test_db, sequencer)


@pytest_asyncio.fixture(scope="function")
async def app(
    session_maker: async_sessionmaker,
    ledger_clock: FakeClock,
) -> AsyncGenerator[FastAPI, None]:
    """Ledger host wired to the test database and the fake ledger clock."""
    application = create_application(ledger_clock=ledger_clock, use_lifespan=False)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db

    async with session_maker() as session:
        await ElectionLedgerService(session, application.state.sequencer).bootstrap()

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Raw HTTP client against the ledger host."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def make_ledger(app: FastAPI) -> AsyncGenerator[Callable[..., LedgerClient], None]:
    """Factory for ledger clients signed as a given identity."""
    clients: List[LedgerClient] = []

    def factory(identity=None) -> LedgerClient:
        ledger = LedgerClient(
            session=LocalWalletSession(identity),
            base_url="http://test",
            transport=ASGITransport(app=app),
            read_retry=RetryPolicy(max_attempts=1, interval=0),
        )
        clients.append(ledger)
        return ledger

    yield factory

    for ledger in clients:
        await ledger.disconnect()


@pytest.fixture
def owner_ledger(make_ledger) -> LedgerClient:
    return make_ledger(OWNER)


@pytest.fixture
def voter_ledger(make_ledger) -> LedgerClient:
    return make_ledger(VOTER)


@pytest.fixture
def mock_ledger() -> MagicMock:
    """LedgerClient double for unit tests of client components."""
    mock = MagicMock(spec=LedgerClient)
    mock.session = LocalWalletSession(VOTER)

    receipt = TransactionReceipt(confirmation_id="0x" + "1" * 64, block_number=7, timestamp=T0)
    for write in (
        "add_candidate",
        "remove_candidate",
        "set_voting_period",
        "clear_voting_period",
        "vote",
        "set_admin",
    ):
        setattr(mock, write, AsyncMock(return_value=receipt))

    mock.get_candidates = AsyncMock(return_value=CandidateList(ids=[0, 1], names=["Alice", "Bob"]))
    mock.get_results = AsyncMock(
        return_value=ResultsTable(round=1, ids=[0, 1], names=["Alice", "Bob"], counts=[0, 0])
    )
    mock.get_voting_period = AsyncMock(
        return_value=VotingPeriodView(start_time=T0, end_time=T0 + 3600, active=True)
    )
    mock.has_voted = AsyncMock(return_value=False)
    mock.last_voted_round = AsyncMock(return_value=0)
    mock.current_round = AsyncMock(return_value=1)
    mock.ledger_clock_now = AsyncMock(return_value=ClockView(now=T0, block_number=7))
    mock.get_roles = AsyncMock(return_value=RolesView(owner=OWNER, admin=ADMIN))
    mock.owner = AsyncMock(return_value=OWNER)
    return mock
