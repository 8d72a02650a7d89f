"""initial schema: organizations, profiles, properties, requests, invitations, notifications

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _org_fk() -> sa.Column:
    return sa.Column(
        "organization_id",
        sa.Uuid(),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("plan_tier", sa.String(30), nullable=False, server_default="free"),
        sa.Column("subscription_status", sa.String(30), nullable=False, server_default="active"),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sms_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_organizations_code", "organizations", ["code"], unique=True)

    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column("phone_e164", sa.String(20), nullable=True),
        sa.Column("sms_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)
    op.create_index("ix_profiles_org_role_active", "profiles", ["organization_id", "role", "is_active"])

    flag_columns = []
    for channel, default in (("in_app", sa.true()), ("email", sa.true()), ("sms", sa.false())):
        for kind in ("new_request", "assignment", "status_update", "comment", "emergency"):
            flag_columns.append(sa.Column(f"{channel}_{kind}", sa.Boolean(), nullable=False, server_default=default))
    op.create_table(
        "notification_preferences",
        sa.Column(
            "profile_id",
            sa.Uuid(),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        *flag_columns,
    )

    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("address_line", sa.String(300), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("state", sa.String(120), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        _created_at(),
    )
    op.create_index("ix_properties_organization_id", "properties", ["organization_id"])

    op.create_table(
        "units",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("label", sa.String(50), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", name="uq_units_tenant_id"),
        sa.UniqueConstraint("property_id", "label", name="uq_units_property_label"),
    )
    op.create_index("ix_units_organization_id", "units", ["organization_id"])
    op.create_index("ix_units_property_id", "units", ["property_id"])

    op.create_table(
        "maintenance_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column("property_id", sa.Uuid(), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
        sa.Column("unit_id", sa.Uuid(), sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assigned_to", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_maintenance_requests_org_status", "maintenance_requests", ["organization_id", "status"])
    op.create_index("ix_maintenance_requests_assigned_to", "maintenance_requests", ["assigned_to"])
    op.create_index("ix_maintenance_requests_tenant_id", "maintenance_requests", ["tenant_id"])

    op.create_table(
        "request_comments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column(
            "request_id",
            sa.Uuid(),
            sa.ForeignKey("maintenance_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("author_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("is_internal", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index(
        "ix_request_comments_request_created_at", "request_comments", ["request_id", "created_at"]
    )

    op.create_table(
        "invitations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("property_id", sa.Uuid(), sa.ForeignKey("properties.id", ondelete="SET NULL"), nullable=True),
        sa.Column("unit_id", sa.Uuid(), sa.ForeignKey("units.id", ondelete="SET NULL"), nullable=True),
        sa.Column("token", sa.String(200), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("invited_by", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_by", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("token", name="uq_invitations_token"),
    )
    op.create_index("ix_invitations_org_email", "invitations", ["organization_id", "email"])
    op.create_index("ix_invitations_org_created_at", "invitations", ["organization_id", "created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column("recipient_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column(
            "related_request_id",
            sa.Uuid(),
            sa.ForeignKey("maintenance_requests.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_notifications_recipient_read", "notifications", ["recipient_id", "read"])
    op.create_index("ix_notifications_recipient_created_at", "notifications", ["recipient_id", "created_at"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column("actor_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "request_id",
            sa.Uuid(),
            sa.ForeignKey("maintenance_requests.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("action", sa.String(60), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_activity_logs_org_created_at", "activity_logs", ["organization_id", "created_at"])
    op.create_index("ix_activity_logs_request_id", "activity_logs", ["request_id"])

    op.create_table(
        "sms_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column("recipient_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("to_number", sa.String(20), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error", sa.String(500), nullable=True),
        _created_at(),
    )
    op.create_index("ix_sms_logs_org_created_at", "sms_logs", ["organization_id", "created_at"])


def downgrade() -> None:
    for table in (
        "sms_logs",
        "activity_logs",
        "notifications",
        "invitations",
        "request_comments",
        "maintenance_requests",
        "units",
        "properties",
        "notification_preferences",
        "profiles",
        "organizations",
    ):
        op.drop_table(table)
