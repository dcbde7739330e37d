from __future__ import annotations

from ..extensions import db
from fieldstock.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-organization slip number counters.

    One row per (organization, document prefix, period). org_key is the org id,
    or 0 for records created without an organization, so the unique constraint
    also holds for unscoped deployments.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_key", "document_type", "period", name="uq_doc_sequences_org_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_key = db.Column(db.Integer, nullable=False, default=0)
    document_type = db.Column(db.String(16), nullable=False)
    period = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_key": self.org_key,
            "document_type": self.document_type,
            "period": self.period,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
