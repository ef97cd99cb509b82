"""Create users, purchase orders, cost estimates and cost estimate items.

Revision ID: 3f9c2a71d0b4
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f9c2a71d0b4"
down_revision = None
branch_labels = None
depends_on = None

ROLES = ("superadmin", "admin", "unit_kerja", "bsp", "kkf", "dau")
PURCHASE_ORDER_STATUSES = (
    "draft",
    "pending_validation",
    "validated",
    "pending_ce_boq",
    "ce_boq_created",
    "ce_boq_approved",
    "in_progress",
    "completed",
    "cancelled",
)
PRIORITIES = ("low", "medium", "high", "urgent")
COST_ESTIMATE_STATUSES = ("draft", "pending_approval", "approved", "rejected")
COST_ESTIMATE_TYPES = ("cost_estimate", "bill_of_quantities")


def _in_clause(column, values):
    quoted = ",".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("email", sa.String(length=120), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="unit_kerja"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("last_login_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint(_in_clause("role", ROLES), name="ck_users_role_valid"),
        )
        op.create_index("ix_users_role", "users", ["role"])
        op.create_index("ix_users_is_active", "users", ["is_active"])

    if not inspector.has_table("purchase_orders"):
        op.create_table(
            "purchase_orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("po_number", sa.String(length=20), nullable=False, unique=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("estimated_value", sa.Numeric(15, 2), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
            sa.Column("required_by", sa.Date(), nullable=True),
            sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("validated_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("validated_at", sa.DateTime(), nullable=True),
            sa.Column("completed_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("validation_notes", sa.Text(), nullable=True),
            sa.Column("completion_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint(
                _in_clause("status", PURCHASE_ORDER_STATUSES),
                name="ck_purchase_orders_status_valid",
            ),
            sa.CheckConstraint(
                _in_clause("priority", PRIORITIES),
                name="ck_purchase_orders_priority_valid",
            ),
        )
        op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])
        op.create_index("ix_purchase_orders_priority", "purchase_orders", ["priority"])
        op.create_index("ix_purchase_orders_created_by_id", "purchase_orders", ["created_by_id"])
        op.create_index(
            "ix_purchase_orders_validated_by_id", "purchase_orders", ["validated_by_id"]
        )
        op.create_index(
            "ix_purchase_orders_completed_by_id", "purchase_orders", ["completed_by_id"]
        )
        op.create_index(
            "ix_purchase_orders_status_created_at", "purchase_orders", ["status", "created_at"]
        )
        op.create_index(
            "ix_purchase_orders_priority_required_by",
            "purchase_orders",
            ["priority", "required_by"],
        )

    if not inspector.has_table("cost_estimates"):
        op.create_table(
            "cost_estimates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "purchase_order_id",
                sa.Integer(),
                sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("ce_number", sa.String(length=20), nullable=False, unique=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=False, server_default="cost_estimate"),
            sa.Column("total_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("approved_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("approval_notes", sa.Text(), nullable=True),
            sa.Column("rejection_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint(
                _in_clause("status", COST_ESTIMATE_STATUSES),
                name="ck_cost_estimates_status_valid",
            ),
            sa.CheckConstraint(
                _in_clause("type", COST_ESTIMATE_TYPES),
                name="ck_cost_estimates_type_valid",
            ),
        )
        op.create_index(
            "ix_cost_estimates_purchase_order_id", "cost_estimates", ["purchase_order_id"]
        )
        op.create_index("ix_cost_estimates_type", "cost_estimates", ["type"])
        op.create_index("ix_cost_estimates_status", "cost_estimates", ["status"])
        op.create_index("ix_cost_estimates_created_by_id", "cost_estimates", ["created_by_id"])
        op.create_index("ix_cost_estimates_approved_by_id", "cost_estimates", ["approved_by_id"])
        op.create_index(
            "ix_cost_estimates_status_created_at", "cost_estimates", ["status", "created_at"]
        )

    if not inspector.has_table("cost_estimate_items"):
        op.create_table(
            "cost_estimate_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "cost_estimate_id",
                sa.Integer(),
                sa.ForeignKey("cost_estimates.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("item_code", sa.String(length=50), nullable=True),
            sa.Column("description", sa.String(length=255), nullable=False),
            sa.Column("unit", sa.String(length=50), nullable=False),
            sa.Column("quantity", sa.Numeric(10, 2), nullable=False),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("total_price", sa.Numeric(15, 2), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint("quantity > 0", name="ck_cost_estimate_items_quantity_positive"),
            sa.CheckConstraint(
                "unit_price >= 0", name="ck_cost_estimate_items_unit_price_non_negative"
            ),
        )
        op.create_index(
            "ix_cost_estimate_items_cost_estimate_id",
            "cost_estimate_items",
            ["cost_estimate_id"],
        )
        op.create_index("ix_cost_estimate_items_sort_order", "cost_estimate_items", ["sort_order"])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table in ("cost_estimate_items", "cost_estimates", "purchase_orders", "users"):
        if inspector.has_table(table):
            op.drop_table(table)
