"""
Initial schema - farms, usage events and alert tables

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

HIGH_AMU_ALERT_TYPES = (
    "HISTORICAL_SPIKE",
    "PEER_COMPARISON_SPIKE",
    "ABSOLUTE_THRESHOLD",
    "TREND_INCREASE",
    "CRITICAL_DRUG_USAGE",
    "SUSTAINED_HIGH_USAGE",
)


def _in(column: str, values) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def upgrade() -> None:
    # 1. Farms
    op.create_table(
        "farms",
        sa.Column("farm_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("species", sa.String(50)),
        sa.Column("herd_size", sa.Integer),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("status", sa.String(20), nullable=False, server_default="Active"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('Active', 'Suspended')", name="ck_farm_status"),
    )
    op.create_index("ix_farms_location", "farms", ["latitude", "longitude"])

    # 2. Usage events
    op.create_table(
        "usage_events",
        sa.Column("event_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("farm_id", UUID(as_uuid=True), sa.ForeignKey("farms.farm_id"), nullable=False),
        sa.Column("drug_name", sa.String(255), nullable=False),
        sa.Column("drug_class", sa.String(20)),
        sa.Column("event_type", sa.String(20), nullable=False, server_default="treatment"),
        sa.Column("status", sa.String(20), nullable=False, server_default="Pending"),
        sa.Column("start_date", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("event_type IN ('treatment', 'feed')", name="ck_usage_event_type"),
        sa.CheckConstraint("status IN ('Pending', 'Approved', 'Rejected')", name="ck_usage_event_status"),
        sa.CheckConstraint(
            "drug_class IS NULL OR drug_class IN ('Access', 'Watch', 'Reserve', 'Unclassified')",
            name="ck_usage_event_drug_class",
        ),
    )
    op.create_index("ix_usage_events_farm_created", "usage_events", ["farm_id", "created_at"])
    op.create_index("ix_usage_events_status", "usage_events", ["status"])

    # 3. High AMU alerts
    op.create_table(
        "high_amu_alerts",
        sa.Column("alert_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("farm_id", UUID(as_uuid=True), sa.ForeignKey("farms.farm_id"), nullable=False),
        sa.Column("alert_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("details", JSONB, server_default="{}"),
        sa.Column("status", sa.String(20), nullable=False, server_default="New"),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("acknowledged_at", sa.DateTime),
        sa.Column("resolved_at", sa.DateTime),
        sa.CheckConstraint(_in("alert_type", HIGH_AMU_ALERT_TYPES), name="ck_high_amu_alert_type"),
        sa.CheckConstraint(
            "severity IN ('Low', 'Medium', 'High', 'Critical')", name="ck_high_amu_alert_severity"
        ),
        sa.CheckConstraint("status IN ('New', 'Acknowledged', 'Resolved')", name="ck_high_amu_alert_status"),
    )
    op.create_index("ix_high_amu_alerts_farm_status", "high_amu_alerts", ["farm_id", "status"])
    # At most one open alert per farm and alert type
    op.create_index(
        "uq_high_amu_alerts_open",
        "high_amu_alerts",
        ["farm_id", "alert_type"],
        unique=True,
        postgresql_where=sa.text("status = 'New'"),
    )

    # 4. Disease alerts
    op.create_table(
        "disease_alerts",
        sa.Column("alert_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("farm_id", UUID(as_uuid=True), sa.ForeignKey("farms.farm_id"), nullable=False),
        sa.Column("disease_name", sa.String(255), nullable=False),
        sa.Column("risk_level", sa.String(20), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("preventive_measures", JSONB, nullable=False, server_default="[]"),
        sa.Column("status", sa.String(20), nullable=False, server_default="New"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("acknowledged_at", sa.DateTime),
        sa.CheckConstraint("risk_level IN ('Low', 'Moderate', 'High')", name="ck_disease_alert_risk_level"),
        sa.CheckConstraint("status IN ('New', 'Acknowledged')", name="ck_disease_alert_status"),
    )
    op.create_index("ix_disease_alerts_farm_status", "disease_alerts", ["farm_id", "status"])
    op.create_index(
        "uq_disease_alerts_open",
        "disease_alerts",
        ["farm_id", "disease_name"],
        unique=True,
        postgresql_where=sa.text("status = 'New'"),
    )


def downgrade() -> None:
    tables = [
        "disease_alerts",
        "high_amu_alerts",
        "usage_events",
        "farms",
    ]
    for table in tables:
        op.drop_table(table)
