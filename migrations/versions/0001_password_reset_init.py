"""init schema: users and password reset codes

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql as pg


# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # users (only read/written when CREDENTIAL_STORE=local)
    op.create_table(
        "users",
        sa.Column("id", pg.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_at", pg.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", pg.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status in ('active','disabled')", name="ck_users_users_status"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    # one outstanding code per email; upserted on reissue
    op.create_table(
        "password_reset_otps",
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("code", sa.String(length=6), nullable=False),
        sa.Column("created_at", pg.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("expires_at", pg.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint("expires_at > created_at", name="ck_password_reset_otps_password_reset_otps_window"),
        sa.PrimaryKeyConstraint("email", name="pk_password_reset_otps"),
    )
    op.create_index("ix_password_reset_otps_expires_at", "password_reset_otps", ["expires_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_password_reset_otps_expires_at", table_name="password_reset_otps")
    op.drop_table("password_reset_otps")
    op.drop_table("users")
