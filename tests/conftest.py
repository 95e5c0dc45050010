"""Shared fixtures: test settings, a SQLite-backed orders DB and a frozen clock."""

import os

os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("MERCHANT_CODE", "DEMO0001")
os.environ.setdefault("SECRET_KEY", "s3cr3t")
os.environ.setdefault("GATEWAY_BASE_URL", "https://sandbox.gateway.test/paymentv2/vpcpay.html")
os.environ.setdefault("RETURN_URL", "https://rooms.test/payment/result")
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from roompay.common.db import Base  # noqa: E402
from roompay.gateway.canonical import canonicalize  # noqa: E402
from roompay.gateway.config import GatewayConfig  # noqa: E402
from roompay.gateway.redirect import SIGNATURE_FIELD  # noqa: E402
from roompay.gateway.signing import sign  # noqa: E402
from roompay.services.orders import models  # noqa: E402,F401
from roompay.services.orders.service import OrderService  # noqa: E402

SECRET = "s3cr3t"


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def signed(params: dict, secret: str = SECRET) -> dict:
    """Callback params as the gateway would send them, signature attached."""

    result = dict(params)
    result[SIGNATURE_FIELD] = sign(canonicalize(params).to_query(), secret)
    return result


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        merchant_code="DEMO0001",
        secret_key=SECRET,
        gateway_base_url="https://sandbox.gateway.test/paymentv2/vpcpay.html",
        return_url="https://rooms.test/payment/result",
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orders.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )

    # Take the write lock at BEGIN so concurrent writers queue instead of
    # deadlocking on SHARED->RESERVED promotion.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 10, 19, 3, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def order_service(session_factory, clock) -> OrderService:
    return OrderService(session_factory, service_name="orders-test", ttl_minutes=15, clock=clock)
