# Overview: Durable local queue of events captured while the shared store was unreachable.

"""
Offline queue

Events live in the "offline" bind (a local SQLite file by default), never in
the shared store. Enqueue only touches that bind, so it works while the
shared store is down. Only events that pass their store-free rules are
queued; anything else is rejected on the spot.

Drain:
- one drain at a time: a lease row in the offline bind, taken with a
  conditional UPDATE and released at the end (expired leases are taken over)
- oldest first; each event is replayed through the fallback steps
- after every committed step the event's checkpoint list is updated, so a
  retry skips what already reached the shared store
- an event whose record already exists (the atomic commit went through but
  its acknowledgement was lost) is not counted twice
- success deletes the event; failure keeps it (attempts + 1, last_error)
  and the drain moves on to the next event
- every entity touched by a synced event is reconciled at the end
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app, has_app_context
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db, read_cache
from ..models import OfflineDrainLease, OfflineEvent
from ..time_utils import utcnow
from .errors import DrainInProgress
from .fallback_service import build_steps, check_deferrable, request_from_payload, touched_entities
from .reconciliation_service import reconcile_touched

logger = logging.getLogger(__name__)

DRAIN_LEASE = "drain"


@dataclass
class DrainResult:
    synced: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)
    reconciled: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "errors": self.errors,
            "reconciled": self.reconciled,
        }


def new_temp_id() -> str:
    return f"OFFLINE-{int(utcnow().timestamp() * 1000)}-{uuid.uuid4().hex[:8]}"


def new_client_ref() -> str:
    return f"REF-{uuid.uuid4().hex}"


def enqueue(kind: str, request) -> OfflineEvent:
    """
    Persist an event locally and return it. The caller reports it as pending.

    Raises ValidationError for events the replay could never apply. The
    request keeps the client_ref it was first attempted with; one is
    assigned here only when it has none.
    """
    check_deferrable(kind, request)
    if not getattr(request, "client_ref", None):
        request.client_ref = new_client_ref()

    temp_id = new_temp_id()
    event = OfflineEvent(
        temp_id=temp_id,
        kind=kind,
        payload_json=json.dumps(request.to_payload()),
        queued_at=utcnow(),
        attempts=0,
        applied_steps_json="[]",
    )
    db.session.add(event)
    db.session.commit()
    logger.warning("Store unavailable; queued %s offline as %s", kind, temp_id)
    return event


def list_pending() -> list[OfflineEvent]:
    return db.session.query(OfflineEvent).order_by(OfflineEvent.queued_at.asc(), OfflineEvent.id.asc()).all()


def pending_count() -> int:
    return db.session.query(OfflineEvent).count()


def remove(temp_id: str) -> bool:
    event = db.session.query(OfflineEvent).filter_by(temp_id=temp_id).first()
    if event is None:
        return False
    db.session.delete(event)
    db.session.commit()
    logger.info("Removed offline event %s", temp_id)
    return True


def clear() -> int:
    count = db.session.query(OfflineEvent).delete()
    db.session.commit()
    logger.info("Cleared %d offline events", count)
    return count


# =============================================================================
# DRAIN LEASE
# =============================================================================

def _lease_seconds() -> int:
    if has_app_context():
        return current_app.config.get("OFFLINE_DRAIN_LEASE_SECONDS", 300)
    return 300


def acquire_drain_lease(holder: str, *, ttl_seconds: int | None = None) -> bool:
    """Take the drain lease if it is free or expired. Returns True when taken."""
    if db.session.get(OfflineDrainLease, DRAIN_LEASE) is None:
        db.session.add(OfflineDrainLease(name=DRAIN_LEASE))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()

    now = utcnow()
    ttl = _lease_seconds() if ttl_seconds is None else ttl_seconds
    result = db.session.execute(
        update(OfflineDrainLease)
        .where(OfflineDrainLease.name == DRAIN_LEASE)
        .where(or_(OfflineDrainLease.holder.is_(None), OfflineDrainLease.expires_at < now))
        .values(holder=holder, expires_at=now + timedelta(seconds=ttl))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def release_drain_lease(holder: str) -> None:
    db.session.execute(
        update(OfflineDrainLease)
        .where(OfflineDrainLease.name == DRAIN_LEASE, OfflineDrainLease.holder == holder)
        .values(holder=None, expires_at=None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def current_drain_holder() -> str | None:
    lease = db.session.get(OfflineDrainLease, DRAIN_LEASE, populate_existing=True)
    return lease.holder if lease is not None else None


# =============================================================================
# REPLAY
# =============================================================================

def _checkpoint(event: OfflineEvent, step_name: str) -> None:
    steps = event.applied_steps
    steps.append(step_name)
    event.applied_steps_json = json.dumps(steps)
    db.session.commit()


def replay(event: OfflineEvent) -> dict[str, set]:
    """Run the remaining fallback steps of one event, checkpointing each."""
    request = request_from_payload(event.kind, event.payload)
    done = set(event.applied_steps)
    for name, step in build_steps(event.kind, request):
        if name in done:
            continue
        created = step()
        db.session.commit()
        _checkpoint(event, name)
        if name == "record" and created is False:
            logger.info("Offline event %s was already committed; skipping its counters", event.temp_id)
            break
    return touched_entities(event.kind, request)


def drain(*, reconcile: bool = True) -> DrainResult:
    """
    Replay every queued event. Never raises for a single bad event.

    Raises DrainInProgress when another drain holds the lease.
    """
    holder = uuid.uuid4().hex
    if not acquire_drain_lease(holder):
        raise DrainInProgress(current_drain_holder())
    try:
        return _drain(reconcile=reconcile)
    finally:
        db.session.rollback()
        release_drain_lease(holder)


def _drain(*, reconcile: bool) -> DrainResult:
    result = DrainResult()
    touched = {"items": set(), "vendors": set(), "customers": set()}

    for event in list_pending():
        temp_id = event.temp_id
        try:
            event_touched = replay(event)
        except Exception as exc:
            db.session.rollback()
            event = db.session.query(OfflineEvent).filter_by(temp_id=temp_id).first()
            message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
            if event is not None:
                event.attempts += 1
                event.last_error = message[:1000]
                event.last_attempt_at = utcnow()
                db.session.commit()
            result.failed += 1
            result.errors.append({"temp_id": temp_id, "error": message})
            logger.warning("Offline event %s failed to sync: %s", temp_id, message)
            continue

        for key, ids in event_touched.items():
            touched[key].update(ids)
        db.session.delete(event)
        db.session.commit()
        result.synced += 1
        logger.info("Synced offline event %s", temp_id)

    read_cache.clear()
    if reconcile and result.synced:
        result.reconciled = reconcile_touched(touched)
    return result
