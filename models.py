# models.py

from datetime import datetime, timezone
from decimal import Decimal

from flask_login import UserMixin
from sqlalchemy import CheckConstraint
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db
from permissions import (
    APPROVE_COST_ESTIMATES,
    COMPLETE_PURCHASE_ORDERS,
    CREATE_COST_ESTIMATES,
    DEFAULT_ROLE,
    MANAGE_USERS,
    ROLE_LABELS,
    ROLES,
    VALIDATE_PURCHASE_ORDERS,
    has_capability,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _in_clause(column: str, values) -> str:
    quoted = ",".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


# Purchase order statuses
PURCHASE_ORDER_STATUS_DRAFT = "draft"
PURCHASE_ORDER_STATUS_PENDING_VALIDATION = "pending_validation"
PURCHASE_ORDER_STATUS_VALIDATED = "validated"
PURCHASE_ORDER_STATUS_PENDING_CE_BOQ = "pending_ce_boq"
PURCHASE_ORDER_STATUS_CE_BOQ_CREATED = "ce_boq_created"
PURCHASE_ORDER_STATUS_CE_BOQ_APPROVED = "ce_boq_approved"
PURCHASE_ORDER_STATUS_IN_PROGRESS = "in_progress"
PURCHASE_ORDER_STATUS_COMPLETED = "completed"
PURCHASE_ORDER_STATUS_CANCELLED = "cancelled"

PURCHASE_ORDER_STATUSES = (
    PURCHASE_ORDER_STATUS_DRAFT,
    PURCHASE_ORDER_STATUS_PENDING_VALIDATION,
    PURCHASE_ORDER_STATUS_VALIDATED,
    PURCHASE_ORDER_STATUS_PENDING_CE_BOQ,
    PURCHASE_ORDER_STATUS_CE_BOQ_CREATED,
    PURCHASE_ORDER_STATUS_CE_BOQ_APPROVED,
    PURCHASE_ORDER_STATUS_IN_PROGRESS,
    PURCHASE_ORDER_STATUS_COMPLETED,
    PURCHASE_ORDER_STATUS_CANCELLED,
)

PURCHASE_ORDER_STATUS_LABELS = {
    PURCHASE_ORDER_STATUS_DRAFT: "Draft",
    PURCHASE_ORDER_STATUS_PENDING_VALIDATION: "Pending Validation",
    PURCHASE_ORDER_STATUS_VALIDATED: "Validated",
    PURCHASE_ORDER_STATUS_PENDING_CE_BOQ: "Pending CE/BOQ",
    PURCHASE_ORDER_STATUS_CE_BOQ_CREATED: "CE/BOQ Created",
    PURCHASE_ORDER_STATUS_CE_BOQ_APPROVED: "CE/BOQ Approved",
    PURCHASE_ORDER_STATUS_IN_PROGRESS: "In Progress",
    PURCHASE_ORDER_STATUS_COMPLETED: "Completed",
    PURCHASE_ORDER_STATUS_CANCELLED: "Cancelled",
}

# Statuses in which a PO may still be edited or deleted, and validated.
PURCHASE_ORDER_OPEN_STATUSES = (
    PURCHASE_ORDER_STATUS_DRAFT,
    PURCHASE_ORDER_STATUS_PENDING_VALIDATION,
)

PRIORITY_LOW = "low"
PRIORITY_MEDIUM = "medium"
PRIORITY_HIGH = "high"
PRIORITY_URGENT = "urgent"

PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH, PRIORITY_URGENT)

PRIORITY_LABELS = {
    PRIORITY_LOW: "Low",
    PRIORITY_MEDIUM: "Medium",
    PRIORITY_HIGH: "High",
    PRIORITY_URGENT: "Urgent",
}

# Cost estimate statuses and types
COST_ESTIMATE_STATUS_DRAFT = "draft"
COST_ESTIMATE_STATUS_PENDING_APPROVAL = "pending_approval"
COST_ESTIMATE_STATUS_APPROVED = "approved"
COST_ESTIMATE_STATUS_REJECTED = "rejected"

COST_ESTIMATE_STATUSES = (
    COST_ESTIMATE_STATUS_DRAFT,
    COST_ESTIMATE_STATUS_PENDING_APPROVAL,
    COST_ESTIMATE_STATUS_APPROVED,
    COST_ESTIMATE_STATUS_REJECTED,
)

COST_ESTIMATE_STATUS_LABELS = {
    COST_ESTIMATE_STATUS_DRAFT: "Draft",
    COST_ESTIMATE_STATUS_PENDING_APPROVAL: "Pending Approval",
    COST_ESTIMATE_STATUS_APPROVED: "Approved",
    COST_ESTIMATE_STATUS_REJECTED: "Rejected",
}

# Approve and reject share the same source states.
COST_ESTIMATE_DECIDABLE_STATUSES = (
    COST_ESTIMATE_STATUS_DRAFT,
    COST_ESTIMATE_STATUS_PENDING_APPROVAL,
)

COST_ESTIMATE_TYPE_CE = "cost_estimate"
COST_ESTIMATE_TYPE_BOQ = "bill_of_quantities"

COST_ESTIMATE_TYPES = (COST_ESTIMATE_TYPE_CE, COST_ESTIMATE_TYPE_BOQ)

COST_ESTIMATE_TYPE_LABELS = {
    COST_ESTIMATE_TYPE_CE: "Cost Estimate",
    COST_ESTIMATE_TYPE_BOQ: "Bill of Quantities",
}


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=DEFAULT_ROLE, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (CheckConstraint(_in_clause("role", ROLES), name="ck_users_role_valid"),)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def role_label(self) -> str:
        return ROLE_LABELS.get(self.role, "Unknown")

    @property
    def can_manage_users(self) -> bool:
        return has_capability(self, MANAGE_USERS)

    @property
    def can_validate_purchase_orders(self) -> bool:
        return has_capability(self, VALIDATE_PURCHASE_ORDERS)

    @property
    def can_approve_cost_estimates(self) -> bool:
        return has_capability(self, APPROVE_COST_ESTIMATES)

    @property
    def can_create_cost_estimates(self) -> bool:
        return has_capability(self, CREATE_COST_ESTIMATES)

    @property
    def can_complete_purchase_orders(self) -> bool:
        return has_capability(self, COMPLETE_PURCHASE_ORDERS)

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"


class PurchaseOrder(db.Model):
    """
    Root workflow entity.

    Status flow driven by the workflow operations:
        draft / pending_validation -> validated       (validate)
        validated                  -> ce_boq_created  (cost estimate created)
        ce_boq_created             -> validated       (draft cost estimate deleted)
        in_progress                -> completed       (complete)

    pending_ce_boq, ce_boq_approved, in_progress and cancelled are set
    externally; no operation produces them.
    """

    __tablename__ = "purchase_orders"

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(20), unique=True, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    estimated_value = db.Column(db.Numeric(15, 2), nullable=True)
    status = db.Column(
        db.String(30), nullable=False, default=PURCHASE_ORDER_STATUS_DRAFT, index=True
    )
    priority = db.Column(db.String(10), nullable=False, default=PRIORITY_MEDIUM, index=True)
    required_by = db.Column(db.Date, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    validated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    validated_at = db.Column(db.DateTime, nullable=True)
    completed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    validation_notes = db.Column(db.Text, nullable=True)
    completion_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    created_by = db.relationship("User", foreign_keys=[created_by_id])
    validated_by = db.relationship("User", foreign_keys=[validated_by_id])
    completed_by = db.relationship("User", foreign_keys=[completed_by_id])

    cost_estimates = db.relationship(
        "CostEstimate",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="CostEstimate.id",
    )

    __table_args__ = (
        CheckConstraint(
            _in_clause("status", PURCHASE_ORDER_STATUSES),
            name="ck_purchase_orders_status_valid",
        ),
        CheckConstraint(
            _in_clause("priority", PRIORITIES),
            name="ck_purchase_orders_priority_valid",
        ),
        db.Index("ix_purchase_orders_status_created_at", "status", "created_at"),
        db.Index("ix_purchase_orders_priority_required_by", "priority", "required_by"),
    )

    def __repr__(self):
        return f"<PurchaseOrder {self.po_number} [{self.status}]>"

    @property
    def status_label(self) -> str:
        return PURCHASE_ORDER_STATUS_LABELS.get(self.status, "Unknown")

    @property
    def priority_label(self) -> str:
        return PRIORITY_LABELS.get(self.priority, "Unknown")

    @property
    def active_cost_estimate(self):
        """Newest approved cost estimate, or None."""
        approved = [
            estimate
            for estimate in self.cost_estimates
            if estimate.status == COST_ESTIMATE_STATUS_APPROVED
        ]
        return max(approved, key=lambda estimate: (estimate.created_at, estimate.id), default=None)

    def can_be_validated(self) -> bool:
        return self.status in PURCHASE_ORDER_OPEN_STATUSES

    def can_be_edited(self) -> bool:
        return self.status in PURCHASE_ORDER_OPEN_STATUSES

    def can_be_deleted(self) -> bool:
        return self.status in PURCHASE_ORDER_OPEN_STATUSES

    def can_have_cost_estimate(self) -> bool:
        return self.status == PURCHASE_ORDER_STATUS_VALIDATED

    def can_be_completed(self) -> bool:
        return self.status == PURCHASE_ORDER_STATUS_IN_PROGRESS


class CostEstimate(db.Model):
    """Cost estimate or bill of quantities attached to one purchase order."""

    __tablename__ = "cost_estimates"

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ce_number = db.Column(db.String(20), unique=True, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(30), nullable=False, default=COST_ESTIMATE_TYPE_CE, index=True)
    # Derived from the items; rewritten after every item change.
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    status = db.Column(
        db.String(20), nullable=False, default=COST_ESTIMATE_STATUS_DRAFT, index=True
    )

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)
    rejection_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    purchase_order = db.relationship("PurchaseOrder", back_populates="cost_estimates")
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_id])

    items = db.relationship(
        "CostEstimateItem",
        back_populates="cost_estimate",
        cascade="all, delete-orphan",
        order_by="CostEstimateItem.sort_order",
    )

    __table_args__ = (
        CheckConstraint(
            _in_clause("status", COST_ESTIMATE_STATUSES),
            name="ck_cost_estimates_status_valid",
        ),
        CheckConstraint(
            _in_clause("type", COST_ESTIMATE_TYPES),
            name="ck_cost_estimates_type_valid",
        ),
        db.Index("ix_cost_estimates_status_created_at", "status", "created_at"),
    )

    def __repr__(self):
        return f"<CostEstimate {self.ce_number} [{self.status}] total={self.total_amount}>"

    @property
    def status_label(self) -> str:
        return COST_ESTIMATE_STATUS_LABELS.get(self.status, "Unknown")

    @property
    def type_label(self) -> str:
        return COST_ESTIMATE_TYPE_LABELS.get(self.type, "Unknown")

    def can_be_edited(self) -> bool:
        return self.status == COST_ESTIMATE_STATUS_DRAFT

    def can_be_approved(self) -> bool:
        return self.status in COST_ESTIMATE_DECIDABLE_STATUSES

    def can_be_rejected(self) -> bool:
        return self.status in COST_ESTIMATE_DECIDABLE_STATUSES


class CostEstimateItem(db.Model):
    __tablename__ = "cost_estimate_items"

    id = db.Column(db.Integer, primary_key=True)
    cost_estimate_id = db.Column(
        db.Integer,
        db.ForeignKey("cost_estimates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_code = db.Column(db.String(50), nullable=True)
    description = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(50), nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    # quantity * unit_price, computed on write
    total_price = db.Column(db.Numeric(15, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    cost_estimate = db.relationship("CostEstimate", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cost_estimate_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_cost_estimate_items_unit_price_non_negative"),
    )

    def __repr__(self):
        return f"<CostEstimateItem {self.id} {self.quantity} x {self.unit_price}>"


def ensure_schema() -> None:
    """Create any missing tables (used when AUTO_SCHEMA_BOOTSTRAP is on)."""
    db.create_all()
