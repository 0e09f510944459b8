"""Create the tax_rates table.

Revision ID: 0001
Revises:
Create Date: 2025-01-06 09:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "tax_rates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("rate", sa.Numeric(10, 6), nullable=False),
        sa.Column("multiplier", sa.Numeric(10, 4), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_tax_rates")),
        sa.UniqueConstraint("effective_from", name=op.f("uq_tax_rates_effective_from")),
        sa.CheckConstraint("rate > 0", name=op.f("ck_tax_rates_rate_positive")),
        sa.CheckConstraint(
            "multiplier > 0", name=op.f("ck_tax_rates_multiplier_positive")
        ),
        sa.CheckConstraint(
            "effective_to IS NULL OR effective_to > effective_from",
            name=op.f("ck_tax_rates_interval_ordered"),
        ),
        postgresql.ExcludeConstraint(
            (sa.text("daterange(effective_from, effective_to)"), "&&"),
            name=op.f("ex_tax_rates_no_overlap"),
            using="gist",
        ),
    )
    op.create_index(
        "uq_tax_rates_single_current",
        "tax_rates",
        [sa.text("(effective_to IS NULL)")],
        unique=True,
        postgresql_where=sa.text("effective_to IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("uq_tax_rates_single_current", table_name="tax_rates")
    op.drop_table("tax_rates")
