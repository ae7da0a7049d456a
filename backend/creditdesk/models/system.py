from __future__ import annotations

from ..extensions import db
from creditdesk.time_utils import to_utc_z, utcnow


class SystemLog(db.Model):
    """
    Operator action audit log (who changed what).

    IMMUTABLE: Never update or delete. Append-only for audit integrity.

    Written after the ledger transaction it describes has committed, through
    the buffered writer in services/system_log_service.py, so a failing log
    write never undoes a ledger mutation.
    """
    __tablename__ = "system_logs"
    __table_args__ = (
        db.Index("ix_system_logs_entity", "entity_type", "entity_id"),
        db.Index("ix_system_logs_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.String(128), nullable=True, index=True)  # opaque operator identity

    action = db.Column(db.String(64), nullable=False, index=True)  # created, updated, deleted, payment, adjustment, credit_sale, stock_increase, stock_decrease
    entity_type = db.Column(db.String(64), nullable=False)  # technical_service, product
    entity_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.String(512), nullable=False)

    # JSON snapshots (kept as text; small)
    old_values = db.Column(db.Text, nullable=True)
    new_values = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": to_utc_z(self.created_at),
        }
