from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

BILLING_STATUS_UNPAID = "unpaid"
BILLING_STATUS_PAST_DUE = "past_due"
BILLING_STATUS_SUSPENDED = "suspended"
BILLING_STATUS_PAID = "paid"

OUTSTANDING_STATUSES = (
    BILLING_STATUS_UNPAID,
    BILLING_STATUS_PAST_DUE,
    BILLING_STATUS_SUSPENDED,
)


class TenantBilling(db.Model):
    """
    Monthly MDR invoice for one tenant.

    One row per (tenant, billing_month); billing_month is "MM-YYYY".

    LIFECYCLE:
    unpaid -> past_due -> paid
    unpaid -> paid
    unpaid/past_due -> suspended (escalation) -> paid
    paid is terminal.
    """
    __tablename__ = "tenant_billings"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "billing_month", name="uq_tenant_billings_tenant_month"),
        db.Index("ix_tenant_billings_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    billing_month = db.Column(db.String(10), nullable=False, index=True)

    total_transactions = db.Column(db.Integer, nullable=False, default=0)
    total_fee = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    penalty_fee = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=BILLING_STATUS_UNPAID)

    amount_paid = db.Column(db.Numeric(15, 2), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    suspended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant", backref=db.backref("billings", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def period(self) -> tuple[int, int]:
        """(month, year) parsed from billing_month."""
        month, year = self.billing_month.split("-")
        return int(month), int(year)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "billing_month": self.billing_month,
            "total_transactions": self.total_transactions,
            "total_fee": money_str(self.total_fee),
            "penalty_fee": money_str(self.penalty_fee),
            "status": self.status,
            "amount_paid": money_str(self.amount_paid),
            "paid_at": to_utc_z(self.paid_at),
            "suspended_at": to_utc_z(self.suspended_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
