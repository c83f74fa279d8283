"""Create lead, conversation, rule, escalation and scheduling tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001_create_automation_tables"
down_revision = None
branch_labels = None
depends_on = None


_UUID = postgresql.UUID(as_uuid=True)


def _id() -> sa.Column:
    return sa.Column(
        "id",
        _UUID,
        primary_key=True,
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.text("now()"),
    )


def _lead_fk() -> sa.Column:
    return sa.Column(
        "lead_id", _UUID, sa.ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )


def upgrade() -> None:
    """Create every table used by the automation engine."""

    op.create_table(
        "leads",
        _id(),
        sa.Column("tenant_id", _UUID, nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320)),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'New'")),
        sa.Column("source", sa.String(length=64)),
        sa.Column("temperature", sa.String(length=16)),
        sa.Column("score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("assigned_coach_id", sa.String(length=64)),
        sa.Column("notes", sa.Text()),
        sa.Column("first_message", sa.Text()),
        _timestamp("first_contact_at", nullable=True),
        _timestamp("last_contact_at", nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "negative_message_count", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index(
        "ix_leads_tenant_phone_unique", "leads", ["tenant_id", "phone"], unique=True
    )
    op.create_index("ix_leads_tenant_status", "leads", ["tenant_id", "status"])

    op.create_table(
        "lead_score_events",
        _id(),
        _lead_fk(),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("reasons", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        _timestamp("created_at"),
    )
    op.create_index("ix_lead_score_events_lead", "lead_score_events", ["lead_id"])

    op.create_table(
        "lead_tasks",
        _id(),
        sa.Column("tenant_id", _UUID, nullable=False),
        _lead_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("assigned_to", sa.String(length=64)),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default=sa.text("'MEDIUM'")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'Pending'")),
        _timestamp("due_at"),
        sa.Column("details", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        _timestamp("created_at"),
    )
    op.create_index("ix_lead_tasks_tenant_lead", "lead_tasks", ["tenant_id", "lead_id"])

    op.create_table(
        "messages",
        _id(),
        sa.Column("tenant_id", _UUID, nullable=False),
        _lead_fk(),
        sa.Column("external_id", sa.String(length=128)),
        sa.Column("sender", sa.String(length=128)),
        sa.Column("recipient", sa.String(length=128)),
        sa.Column("body", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("content_type", sa.String(length=32), nullable=False, server_default=sa.text("'text'")),
        sa.Column("direction", sa.String(length=16), nullable=False),
        _timestamp("sent_at"),
        sa.Column("media_url", sa.Text()),
        sa.Column("is_automated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("rule_id", sa.String(length=64)),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_messages_tenant_lead_sent", "messages", ["tenant_id", "lead_id", "sent_at"]
    )
    op.create_index("ix_messages_external_id", "messages", ["external_id"])

    op.create_table(
        "automation_rules",
        _id(),
        sa.Column("tenant_id", _UUID, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("trigger_event", sa.String(length=64), nullable=False),
        sa.Column("trigger_conditions", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("trigger_logic", sa.String(length=3), nullable=False, server_default=sa.text("'AND'")),
        sa.Column("actions", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index(
        "ix_automation_rules_tenant_name_unique",
        "automation_rules",
        ["tenant_id", "name"],
        unique=True,
    )
    op.create_index(
        "ix_automation_rules_trigger", "automation_rules", ["trigger_event", "is_active"]
    )

    op.create_table(
        "conversation_rules",
        _id(),
        sa.Column("tenant_id", _UUID, nullable=False),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("trigger", sa.String(length=32), nullable=False),
        sa.Column("keywords", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("steps", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index(
        "ix_conversation_rules_tenant_key_unique",
        "conversation_rules",
        ["tenant_id", "key"],
        unique=True,
    )

    op.create_table(
        "conversation_rule_seeds",
        sa.Column("tenant_id", _UUID, primary_key=True, nullable=False),
        _timestamp("seeded_at"),
    )

    op.create_table(
        "escalations",
        sa.Column("lead_id", _UUID, primary_key=True, nullable=False),
        sa.Column("tenant_id", _UUID, nullable=False),
        sa.Column("reason", sa.String(length=128), nullable=False),
        sa.Column("message", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("analysis", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        _timestamp("created_at"),
    )
    op.create_index("ix_escalations_tenant", "escalations", ["tenant_id"])

    op.create_table(
        "scheduled_steps",
        _id(),
        sa.Column("tenant_id", _UUID, nullable=False),
        sa.Column("lead_id", _UUID),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("rule_id", sa.String(length=64)),
        sa.Column("step_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        _timestamp("due_at"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text()),
        _timestamp("completed_at", nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_scheduled_steps_status_due", "scheduled_steps", ["status", "due_at"])


def downgrade() -> None:
    """Drop automation tables in reverse dependency order."""

    op.drop_index("ix_scheduled_steps_status_due", table_name="scheduled_steps")
    op.drop_table("scheduled_steps")
    op.drop_index("ix_escalations_tenant", table_name="escalations")
    op.drop_table("escalations")
    op.drop_table("conversation_rule_seeds")
    op.drop_index("ix_conversation_rules_tenant_key_unique", table_name="conversation_rules")
    op.drop_table("conversation_rules")
    op.drop_index("ix_automation_rules_trigger", table_name="automation_rules")
    op.drop_index("ix_automation_rules_tenant_name_unique", table_name="automation_rules")
    op.drop_table("automation_rules")
    op.drop_index("ix_messages_external_id", table_name="messages")
    op.drop_index("ix_messages_tenant_lead_sent", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_lead_tasks_tenant_lead", table_name="lead_tasks")
    op.drop_table("lead_tasks")
    op.drop_index("ix_lead_score_events_lead", table_name="lead_score_events")
    op.drop_table("lead_score_events")
    op.drop_index("ix_leads_tenant_status", table_name="leads")
    op.drop_index("ix_leads_tenant_phone_unique", table_name="leads")
    op.drop_table("leads")
