"""create aggregation schema

Revision ID: 3b9e1c7d2a40
Revises:
Create Date: 2026-10-12 09:14:27.310521

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3b9e1c7d2a40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_DOCUMENT = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("code", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("code", name="uq_customers_code"),
    )
    op.create_index("ix_customers_id", "customers", ["id"], unique=False)
    op.create_index("ix_customers_name", "customers", ["name"], unique=False)

    op.create_table(
        "workers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_trainee", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_workers_id", "workers", ["id"], unique=False)

    op.create_table(
        "machines",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("name", name="uq_machines_name"),
    )
    op.create_index("ix_machines_id", "machines", ["id"], unique=False)

    op.create_table(
        "work_orders",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("front_number", sa.String(), nullable=False),
        sa.Column("back_number", sa.String(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("project_name", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("term", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="delivered"),
        sa.Column("estimate_amount", sa.Integer(), nullable=True),
        sa.Column("final_decision_amount", sa.Integer(), nullable=True),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.UniqueConstraint("front_number", "back_number", name="uq_work_orders_number"),
        sa.CheckConstraint(
            "status IN ('delivered', 'aggregating', 'aggregated')",
            name="ck_work_orders_status",
        ),
    )
    op.create_index("ix_work_orders_id", "work_orders", ["id"], unique=False)
    op.create_index("ix_work_orders_customer_id", "work_orders", ["customer_id"], unique=False)
    op.create_index("ix_work_orders_status", "work_orders", ["status"], unique=False)

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("worker_id", sa.Integer(), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["worker_id"], ["workers.id"]),
        sa.UniqueConstraint("worker_id", "report_date", name="uq_reports_worker_date"),
    )
    op.create_index("ix_reports_id", "reports", ["id"], unique=False)
    op.create_index("ix_reports_worker_id", "reports", ["worker_id"], unique=False)
    op.create_index("ix_reports_report_date", "reports", ["report_date"], unique=False)

    op.create_table(
        "work_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("report_id", sa.Integer(), nullable=False),
        sa.Column("work_order_id", sa.Integer(), nullable=False),
        sa.Column("machine_id", sa.Integer(), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("work_description", sa.String(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
        sa.ForeignKeyConstraint(["work_order_id"], ["work_orders.id"]),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"]),
    )
    op.create_index("ix_work_records_id", "work_records", ["id"], unique=False)
    op.create_index("ix_work_records_report_id", "work_records", ["report_id"], unique=False)
    op.create_index("ix_work_records_work_order_id", "work_records", ["work_order_id"], unique=False)
    op.create_index("ix_work_records_machine_id", "work_records", ["machine_id"], unique=False)

    op.create_table(
        "rates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("activity", sa.String(), nullable=False),
        sa.Column("effective_from", sa.DateTime(), nullable=False),
        sa.Column("effective_to", sa.DateTime(), nullable=True),
        sa.Column("cost_rate", sa.Integer(), nullable=False),
        sa.Column("bill_rate", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="ck_rates_interval_order",
        ),
        sa.CheckConstraint("cost_rate >= 0 AND bill_rate >= 0", name="ck_rates_nonnegative"),
    )
    op.create_index("ix_rates_id", "rates", ["id"], unique=False)
    op.create_index("ix_rates_activity", "rates", ["activity"], unique=False)
    op.create_index("ix_rates_activity_effective_from", "rates", ["activity", "effective_from"], unique=False)
    op.create_index(
        "uq_rates_one_open_per_activity",
        "rates",
        ["activity"],
        unique=True,
        postgresql_where=sa.text("effective_to IS NULL"),
        sqlite_where=sa.text("effective_to IS NULL"),
    )

    op.create_table(
        "adjustments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("work_order_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_by", sa.String(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["work_order_id"], ["work_orders.id"]),
    )
    op.create_index("ix_adjustments_id", "adjustments", ["id"], unique=False)
    op.create_index("ix_adjustments_work_order_id", "adjustments", ["work_order_id"], unique=False)
    op.create_index("ix_adjustments_type", "adjustments", ["type"], unique=False)

    op.create_table(
        "work_order_activity_memos",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("work_order_id", sa.Integer(), nullable=False),
        sa.Column("activity", sa.String(), nullable=False),
        sa.Column("memo", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["work_order_id"], ["work_orders.id"]),
        sa.UniqueConstraint("work_order_id", "activity", name="uq_activity_memo_work_order_activity"),
    )
    op.create_index("ix_work_order_activity_memos_id", "work_order_activity_memos", ["id"], unique=False)
    op.create_index(
        "ix_work_order_activity_memos_work_order_id",
        "work_order_activity_memos",
        ["work_order_id"],
        unique=False,
    )

    op.create_table(
        "materials",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("work_order_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("cost_unit_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost_quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("cost_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bill_unit_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bill_quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("bill_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("file_estimate", sa.Integer(), nullable=True),
        sa.Column("memo", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["work_order_id"], ["work_orders.id"]),
        sa.CheckConstraint("cost_quantity >= 1 AND bill_quantity >= 1", name="ck_materials_quantity_min"),
        sa.CheckConstraint(
            "cost_unit_price >= 0 AND bill_unit_price >= 0 AND bill_total >= 0",
            name="ck_materials_nonnegative",
        ),
    )
    op.create_index("ix_materials_id", "materials", ["id"], unique=False)
    op.create_index("ix_materials_work_order_id", "materials", ["work_order_id"], unique=False)

    op.create_table(
        "expense_rates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("markup_rate", sa.Numeric(6, 3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("category", name="uq_expense_rates_category"),
    )
    op.create_index("ix_expense_rates_id", "expense_rates", ["id"], unique=False)

    op.create_table(
        "aggregation_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("work_order_id", sa.Integer(), nullable=False),
        sa.Column("work_number", sa.String(), nullable=False),
        sa.Column("customer_name", sa.String(), nullable=False),
        sa.Column("project_name", sa.String(), nullable=False),
        sa.Column("total_hours", sa.Numeric(10, 1), nullable=False),
        sa.Column("cost_total", sa.Integer(), nullable=False),
        sa.Column("bill_total", sa.Integer(), nullable=False),
        sa.Column("material_total", sa.Integer(), nullable=False),
        sa.Column("adjustment_total", sa.Integer(), nullable=False),
        sa.Column("final_amount", sa.Integer(), nullable=False),
        sa.Column("activity_breakdown", JSON_DOCUMENT, nullable=False),
        sa.Column("material_breakdown", JSON_DOCUMENT, nullable=False),
        sa.Column("aggregated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("aggregated_by", sa.String(), nullable=False),
        sa.Column("memo", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(["work_order_id"], ["work_orders.id"]),
        sa.UniqueConstraint("work_order_id", name="uq_aggregation_snapshots_work_order_id"),
    )
    op.create_index("ix_aggregation_snapshots_id", "aggregation_snapshots", ["id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_aggregation_snapshots_id", table_name="aggregation_snapshots")
    op.drop_table("aggregation_snapshots")

    op.drop_index("ix_expense_rates_id", table_name="expense_rates")
    op.drop_table("expense_rates")

    op.drop_index("ix_materials_work_order_id", table_name="materials")
    op.drop_index("ix_materials_id", table_name="materials")
    op.drop_table("materials")

    op.drop_index("ix_work_order_activity_memos_work_order_id", table_name="work_order_activity_memos")
    op.drop_index("ix_work_order_activity_memos_id", table_name="work_order_activity_memos")
    op.drop_table("work_order_activity_memos")

    op.drop_index("ix_adjustments_type", table_name="adjustments")
    op.drop_index("ix_adjustments_work_order_id", table_name="adjustments")
    op.drop_index("ix_adjustments_id", table_name="adjustments")
    op.drop_table("adjustments")

    op.drop_index("uq_rates_one_open_per_activity", table_name="rates")
    op.drop_index("ix_rates_activity_effective_from", table_name="rates")
    op.drop_index("ix_rates_activity", table_name="rates")
    op.drop_index("ix_rates_id", table_name="rates")
    op.drop_table("rates")

    op.drop_index("ix_work_records_machine_id", table_name="work_records")
    op.drop_index("ix_work_records_work_order_id", table_name="work_records")
    op.drop_index("ix_work_records_report_id", table_name="work_records")
    op.drop_index("ix_work_records_id", table_name="work_records")
    op.drop_table("work_records")

    op.drop_index("ix_reports_report_date", table_name="reports")
    op.drop_index("ix_reports_worker_id", table_name="reports")
    op.drop_index("ix_reports_id", table_name="reports")
    op.drop_table("reports")

    op.drop_index("ix_work_orders_status", table_name="work_orders")
    op.drop_index("ix_work_orders_customer_id", table_name="work_orders")
    op.drop_index("ix_work_orders_id", table_name="work_orders")
    op.drop_table("work_orders")

    op.drop_index("ix_machines_id", table_name="machines")
    op.drop_table("machines")

    op.drop_index("ix_workers_id", table_name="workers")
    op.drop_table("workers")

    op.drop_index("ix_customers_name", table_name="customers")
    op.drop_index("ix_customers_id", table_name="customers")
    op.drop_table("customers")
