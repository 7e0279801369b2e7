from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SystemSetting(db.Model):
    """Runtime business setting, read through settings_service.SettingsStore."""
    __tablename__ = "system_settings"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False, unique=True)
    value = db.Column(db.JSON, nullable=True)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class EventLog(db.Model):
    """
    Append-only record of business events (order transitions, adjustments).

    Written in the same DB transaction as the change it describes.
    """
    __tablename__ = "event_logs"
    __table_args__ = (
        db.Index("ix_event_logs_record", "table_name", "record_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_name = db.Column(db.String(64), nullable=False)
    record_id = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(32), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
