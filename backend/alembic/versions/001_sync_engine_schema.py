"""Applications, email links, sync log, Gmail tokens and sync state.

Revision ID: 001_sync_engine
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_sync_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("mailbox_id", sa.String(), nullable=False),
        sa.Column("company", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="applied"),
        sa.Column("close_reason", sa.String(), nullable=True),
        sa.Column("applied_date", sa.DateTime(), nullable=True),
        sa.Column("source_email_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index(op.f("ix_applications_id"), "applications", ["id"], unique=False)
    op.create_index(op.f("ix_applications_mailbox_id"), "applications", ["mailbox_id"], unique=False)
    op.create_index(
        "ix_applications_mailbox_company",
        "applications",
        ["mailbox_id", sa.text("lower(company)")],
        unique=False,
    )

    op.create_table(
        "application_emails",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "application_id",
            sa.Integer(),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email_id", sa.String(), nullable=False),
        sa.Column("from_address", sa.String(), nullable=True),
        sa.Column("from_name", sa.String(), nullable=True),
        sa.Column("subject", sa.String(), nullable=True),
        sa.Column("snippet", sa.Text(), nullable=True),
        sa.Column("email_date", sa.DateTime(), nullable=True),
        sa.Column("email_type", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index(op.f("ix_application_emails_id"), "application_emails", ["id"], unique=False)
    op.create_index(
        op.f("ix_application_emails_application_id"), "application_emails", ["application_id"], unique=False
    )
    op.create_index(op.f("ix_application_emails_email_id"), "application_emails", ["email_id"], unique=False)
    op.create_index(
        "ix_application_emails_app_email",
        "application_emails",
        ["application_id", "email_id"],
        unique=True,
    )

    op.create_table(
        "email_sync_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("mailbox_id", sa.String(), nullable=False),
        sa.Column("email_id", sa.String(), nullable=False),
        sa.Column("result", sa.String(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
    )
    op.create_index(op.f("ix_email_sync_log_id"), "email_sync_log", ["id"], unique=False)
    op.create_index(op.f("ix_email_sync_log_mailbox_id"), "email_sync_log", ["mailbox_id"], unique=False)
    op.create_index(
        "ix_email_sync_log_mailbox_email",
        "email_sync_log",
        ["mailbox_id", "email_id"],
        unique=True,
    )

    op.create_table(
        "gmail_tokens",
        sa.Column("mailbox_id", sa.String(), primary_key=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "sync_state",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("mailbox_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("error_kind", sa.String(32), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        sa.Column("emails_scanned", sa.Integer(), nullable=True),
        sa.Column("new_applications", sa.Integer(), nullable=True),
        sa.Column("updated_applications", sa.Integer(), nullable=True),
        sa.Column("already_processed", sa.Integer(), nullable=True),
        sa.Column("skipped", sa.Integer(), nullable=True),
        sa.Column("errors", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index(op.f("ix_sync_state_id"), "sync_state", ["id"], unique=False)
    op.create_index(op.f("ix_sync_state_mailbox_id"), "sync_state", ["mailbox_id"], unique=True)


def downgrade() -> None:
    op.drop_index(op.f("ix_sync_state_mailbox_id"), table_name="sync_state")
    op.drop_index(op.f("ix_sync_state_id"), table_name="sync_state")
    op.drop_table("sync_state")
    op.drop_table("gmail_tokens")
    op.drop_index("ix_email_sync_log_mailbox_email", table_name="email_sync_log")
    op.drop_index(op.f("ix_email_sync_log_mailbox_id"), table_name="email_sync_log")
    op.drop_index(op.f("ix_email_sync_log_id"), table_name="email_sync_log")
    op.drop_table("email_sync_log")
    op.drop_index("ix_application_emails_app_email", table_name="application_emails")
    op.drop_index(op.f("ix_application_emails_email_id"), table_name="application_emails")
    op.drop_index(op.f("ix_application_emails_application_id"), table_name="application_emails")
    op.drop_index(op.f("ix_application_emails_id"), table_name="application_emails")
    op.drop_table("application_emails")
    op.drop_index("ix_applications_mailbox_company", table_name="applications")
    op.drop_index(op.f("ix_applications_mailbox_id"), table_name="applications")
    op.drop_index(op.f("ix_applications_id"), table_name="applications")
    op.drop_table("applications")
