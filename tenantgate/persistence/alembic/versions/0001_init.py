"""create tenant, role, page and override tables

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("data_retention_days", sa.Integer(), nullable=False, server_default="2555"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="user"),
        sa.Column("phi_access_level", sa.String(), nullable=False, server_default="none"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_company_id", "users", ["company_id"], unique=False)

    op.create_table(
        "custom_roles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("role_name", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_permissions", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
        sa.UniqueConstraint("company_id", "role_name", name="uq_custom_roles_company_name"),
    )
    op.create_index(
        "ix_custom_roles_company_active",
        "custom_roles",
        ["company_id", "is_active"],
        unique=False,
    )

    # Absence of a row means the page is allowed for the role.
    op.create_table(
        "role_page_access",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("role_name", sa.String(), nullable=False),
        sa.Column("page_key", sa.String(), nullable=False),
        sa.Column("allowed", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("company_id", "role_name", "page_key", name="uq_role_page_access"),
    )
    op.create_index(
        "ix_role_page_access_lookup",
        "role_page_access",
        ["company_id", "role_name"],
        unique=False,
    )
    op.create_index("ix_role_page_access_page_key", "role_page_access", ["page_key"], unique=False)

    # Absence of a row means the page is enabled for the company.
    op.create_table(
        "company_available_pages",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("page_key", sa.String(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
        sa.UniqueConstraint("company_id", "page_key", name="uq_company_available_pages"),
    )
    op.create_index(
        "ix_company_available_pages_company_id",
        "company_available_pages",
        ["company_id"],
        unique=False,
    )
    op.create_index(
        "ix_company_available_pages_page_key",
        "company_available_pages",
        ["page_key"],
        unique=False,
    )

    op.create_table(
        "user_permissions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "company_id",
            sa.String(),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("permission", sa.String(), nullable=False),
        sa.Column("resource", sa.String(), nullable=True),
        sa.Column(
            "granted_by",
            sa.String(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index(
        "ix_user_permissions_user_active",
        "user_permissions",
        ["user_id", "is_active"],
        unique=False,
    )
    op.create_index(
        "ix_user_permissions_company_active",
        "user_permissions",
        ["company_id", "is_active"],
        unique=False,
    )
    op.create_index(
        "ix_user_permissions_permission_active",
        "user_permissions",
        ["permission", "is_active"],
        unique=False,
    )

    op.create_table(
        "role_visibility_restrictions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "company_id",
            sa.String(),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role_name", sa.String(), nullable=False),
        sa.Column("restriction_type", sa.String(), nullable=False),
        sa.Column("restriction_value", sa.String(), nullable=False),
        sa.Column("granted_by", sa.String(), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_rvr_lookup",
        "role_visibility_restrictions",
        ["company_id", "role_name", "restriction_type", "is_active"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_rvr_lookup", table_name="role_visibility_restrictions")
    op.drop_table("role_visibility_restrictions")
    op.drop_index("ix_user_permissions_permission_active", table_name="user_permissions")
    op.drop_index("ix_user_permissions_company_active", table_name="user_permissions")
    op.drop_index("ix_user_permissions_user_active", table_name="user_permissions")
    op.drop_table("user_permissions")
    op.drop_index("ix_company_available_pages_page_key", table_name="company_available_pages")
    op.drop_index("ix_company_available_pages_company_id", table_name="company_available_pages")
    op.drop_table("company_available_pages")
    op.drop_index("ix_role_page_access_page_key", table_name="role_page_access")
    op.drop_index("ix_role_page_access_lookup", table_name="role_page_access")
    op.drop_table("role_page_access")
    op.drop_index("ix_custom_roles_company_active", table_name="custom_roles")
    op.drop_table("custom_roles")
    op.drop_index("ix_users_company_id", table_name="users")
    op.drop_table("users")
    op.drop_table("companies")
