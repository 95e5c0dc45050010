"""Transactional outbox relay.

Rows are written in the same transaction as the state change they describe;
`OutboxRelay` claims them in batches, publishes to Kafka and marks them sent.
A row whose publish fails goes back to `PENDING`; a row stuck in `PROCESSING`
past the claim timeout (crashed relay) becomes claimable again.
"""

import asyncio
from datetime import timedelta

from sqlalchemy import func, or_, select, update

from roompay.common.db import as_utc, utcnow
from roompay.common.events import EventEnvelope, KafkaBus
from roompay.common.logging import logger
from roompay.common.metrics import outbox_oldest_pending_age_seconds, outbox_pending_total

PENDING_STATUSES = ("PENDING", "PROCESSING")


def claim_outbox_batch(db, outbox_model, limit: int = 100, processing_timeout_seconds: int = 30) -> list[dict]:
    """Atomically claim a batch of pending or stale rows for publishing."""

    table = outbox_model.__table__
    now = utcnow()
    stale_before = now - timedelta(seconds=processing_timeout_seconds)
    claim_ids = (
        select(table.c.id)
        .where(
            or_(
                table.c.status == "PENDING",
                (table.c.status == "PROCESSING") & (table.c.sent_at < stale_before),
            )
        )
        .order_by(table.c.created_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .scalar_subquery()
    )
    rows = db.execute(
        update(table)
        .where(table.c.id.in_(claim_ids))
        .values(status="PROCESSING", sent_at=now)
        .returning(table.c.id, table.c.topic, table.c.payload)
    ).all()
    return [{"id": row.id, "topic": row.topic, "payload": row.payload} for row in rows]


def settle_outbox_row(db, outbox_model, row_id: str, delivered: bool) -> None:
    """Mark a claimed row `SENT`, or hand it back as `PENDING` for retry."""

    table = outbox_model.__table__
    values = {"status": "SENT", "sent_at": utcnow()} if delivered else {"status": "PENDING", "sent_at": None}
    db.execute(update(table).where(table.c.id == row_id, table.c.status == "PROCESSING").values(**values))


def update_outbox_backlog_metrics(db, outbox_model, service_name: str) -> None:
    table = outbox_model.__table__
    pending_count, oldest_pending = db.execute(
        select(func.count(), func.min(table.c.created_at)).where(table.c.status.in_(PENDING_STATUSES))
    ).one()
    age_seconds = 0.0
    if oldest_pending is not None:
        age_seconds = max(0.0, (utcnow() - as_utc(oldest_pending)).total_seconds())
    outbox_pending_total.labels(service=service_name).set(float(pending_count))
    outbox_oldest_pending_age_seconds.labels(service=service_name).set(age_seconds)


class OutboxRelay:
    """Publishes one service's outbox table to Kafka."""

    def __init__(self, session_factory, outbox_model, service_name: str, bus: KafkaBus | None = None) -> None:
        self.session_factory = session_factory
        self.outbox_model = outbox_model
        self.service_name = service_name
        self.bus = bus or KafkaBus()

    async def publish_once(self, limit: int = 100) -> int:
        """Relay one batch; returns how many rows were delivered."""

        with self.session_factory() as db:
            rows = claim_outbox_batch(db, self.outbox_model, limit=limit)
            db.commit()
        delivered = 0
        for row in rows:
            try:
                await self.bus.publish(row["topic"], EventEnvelope(**row["payload"]))
                ok = True
            except Exception as exc:
                logger.exception("outbox publish failed topic=%s id=%s: %s", row["topic"], row["id"], exc)
                ok = False
            with self.session_factory() as db:
                settle_outbox_row(db, self.outbox_model, row["id"], delivered=ok)
                db.commit()
            delivered += int(ok)
        with self.session_factory() as db:
            update_outbox_backlog_metrics(db, self.outbox_model, self.service_name)
        return delivered

    async def run_forever(self, idle_seconds: float = 0.5) -> None:
        while True:
            try:
                await self.publish_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("outbox relay pass failed: %s", exc)
            await asyncio.sleep(idle_seconds)

    async def close(self) -> None:
        await self.bus.close()
