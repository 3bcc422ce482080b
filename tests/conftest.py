"""
Pytest fixtures for the commission service test suite.

Two database flavours:

* ``session`` -- in-memory SQLite, one connection; for single-session tests.
* ``session_factory`` -- file-backed SQLite under ``tmp_path``; for tests in
  which handlers, trackers or racing callers open their own sessions.

Redis is ``fakeredis`` with a fresh server per test.
"""

import json
import logging
from collections.abc import Callable, Generator
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from commission_batch.tasks import DailyPnlTask, OvernightSwapTask, TaskRegistry
from commission_config.schema import (
    DefaultOnBehalfSettings,
    DefaultOrderExecutionSettings,
    DefaultOvernightSwapSettings,
    DefaultRateSettings,
)
from commission_kernel.db.base import Base
from commission_kernel.db.engine import enable_sqlite_savepoints
from commission_kernel.domain.clock import DeterministicClock
from commission_kernel.domain.rates import OvernightSwapRate
from commission_kernel.domain.sources import (
    InMemoryAssetPairSource,
    InMemoryInterestRateSource,
    InMemoryPositionSource,
    InMemoryQuoteRateProvider,
)
from commission_kernel.domain.values import AssetPair, OpenPosition, PositionDirection
from commission_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from commission_kernel.services.distributed_lock import RedisDistributedLock
from commission_services._orm_registry import import_all_orm_models
from commission_services.events import InMemoryEventPublisher

# ---------------------------------------------------------------------------
# Logging fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Enable structured JSON logging for the entire test session."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Reset LogContext between tests to prevent leakage."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture commission_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.run_batch(...)
            logs = captured_logs()
            assert any(r["message"] == "batch_finished" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("commission_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    """In-memory SQLite engine with every table created."""
    import_all_orm_models()
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine; connections are shared across threads."""
    import_all_orm_models()
    engine = create_engine(
        f"sqlite:///{tmp_path / 'commission.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(file_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=file_engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Clock, Redis and publisher fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer())


@pytest.fixture
def distributed_lock(redis_client) -> RedisDistributedLock:
    return RedisDistributedLock(redis_client)


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def default_rate_settings() -> DefaultRateSettings:
    return DefaultRateSettings(
        order_execution=DefaultOrderExecutionSettings(
            commission_cap=Decimal("100"),
            commission_floor=Decimal("1"),
            commission_rate=Decimal("0.001"),
            commission_asset="USD",
            legal_entity="default",
        ),
        overnight_swap=DefaultOvernightSwapSettings(
            repo_surcharge_percent=Decimal("0.01"),
            fix_rate=Decimal("0.02"),
            commission_asset="USD",
            legal_entity="default",
        ),
        on_behalf=DefaultOnBehalfSettings(
            commission=Decimal("10"),
            commission_asset="USD",
            legal_entity="default",
        ),
    )


@pytest.fixture
def make_position() -> Callable[..., OpenPosition]:
    """Factory for open positions; opened 2024-01-01 09:00 UTC by default."""

    def _make(
        position_id: str = "pos-1",
        *,
        account_id: str = "acc-1",
        asset_pair_id: str = "EURUSD",
        direction: PositionDirection = PositionDirection.LONG,
        volume: str = "1000",
        opened: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
        pnl: str = "0",
        charged_pnl: str = "0",
        fx_rate: str = "1",
    ) -> OpenPosition:
        return OpenPosition(
            id=position_id,
            account_id=account_id,
            asset_pair_id=asset_pair_id,
            open_timestamp=opened,
            direction=direction,
            current_volume=Decimal(volume),
            pnl=Decimal(pnl),
            charged_pnl=Decimal(charged_pnl),
            fx_rate=Decimal(fx_rate),
        )

    return _make


# ---------------------------------------------------------------------------
# Calculation wiring fixtures
# ---------------------------------------------------------------------------


class StaticSwapRates:
    """Overnight swap rate provider over a fixed table; records lookups."""

    def __init__(self, rates: dict[str, OvernightSwapRate]):
        self.rates = dict(rates)
        self.lookups: list[str] = []

    def get_overnight_swap_rate(self, asset_pair_id: str) -> OvernightSwapRate:
        self.lookups.append(asset_pair_id)
        return self.rates[asset_pair_id]


SWAP_RATE = OvernightSwapRate(
    asset_pair_id="EURUSD",
    repo_surcharge_percent=Decimal("0.01"),
    fix_rate=Decimal("0.02"),
    commission_asset="USD",
)


@pytest.fixture
def position_source() -> InMemoryPositionSource:
    return InMemoryPositionSource()


@pytest.fixture
def swap_rates() -> StaticSwapRates:
    return StaticSwapRates({
        "EURUSD": SWAP_RATE,
        "BTCUSD": replace(SWAP_RATE, asset_pair_id="BTCUSD"),
    })


@pytest.fixture
def asset_pairs() -> InMemoryAssetPairSource:
    return InMemoryAssetPairSource([
        AssetPair(id="EURUSD", base_asset_id="EUR", quote_asset_id="USD", legal_entity="default"),
        AssetPair(id="BTCUSD", base_asset_id="BTC", quote_asset_id="USD", legal_entity="default"),
    ])


@pytest.fixture
def quote_rates() -> InMemoryQuoteRateProvider:
    return InMemoryQuoteRateProvider({
        ("USD", "EURUSD"): Decimal("1"),
        ("USD", "BTCUSD"): Decimal("2"),
    })


@pytest.fixture
def task_registry(asset_pairs, quote_rates, swap_rates) -> TaskRegistry:
    registry = TaskRegistry()
    registry.register(
        OvernightSwapTask(asset_pairs, InMemoryInterestRateSource(), quote_rates, swap_rates)
    )
    registry.register(DailyPnlTask())
    return registry
