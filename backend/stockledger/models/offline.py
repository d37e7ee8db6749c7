from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class OfflineEvent(db.Model):
    """
    Business event captured while the shared store was unreachable.

    Lives in the local "offline" bind. applied_steps_json records which
    fallback steps already reached the shared store, so a retried drain
    resumes after the last checkpoint instead of starting over.
    """
    __bind_key__ = "offline"
    __tablename__ = "offline_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    temp_id = db.Column(db.String(64), nullable=False, unique=True)
    kind = db.Column(db.String(32), nullable=False, index=True)
    payload_json = db.Column(db.Text, nullable=False)
    queued_at = db.Column(db.DateTime(timezone=True), nullable=False)

    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    last_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    applied_steps_json = db.Column(db.Text, nullable=False, default="[]")

    @property
    def payload(self) -> dict:
        return json.loads(self.payload_json)

    @property
    def applied_steps(self) -> list[str]:
        return json.loads(self.applied_steps_json or "[]")

    def to_dict(self) -> dict:
        return {
            "temp_id": self.temp_id,
            "kind": self.kind,
            "payload": self.payload,
            "queued_at": to_utc_z(self.queued_at),
            "attempts": self.attempts,
            "last_error": self.last_error,
            "last_attempt_at": to_utc_z(self.last_attempt_at) if self.last_attempt_at else None,
            "applied_steps": self.applied_steps,
        }


class OfflineDrainLease(db.Model):
    """
    Single-row lease that serializes drains of the offline queue.

    A drain takes it with a conditional UPDATE (free or expired) and gives it
    back when done. An expired lease is taken over, so a crashed drain does
    not block the queue forever.
    """
    __bind_key__ = "offline"
    __tablename__ = "offline_drain_lease"

    name = db.Column(db.String(32), primary_key=True)
    holder = db.Column(db.String(64), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<OfflineDrainLease {self.name} held by {self.holder}>"
