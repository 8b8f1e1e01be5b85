"""create token_prices and price_alerts

Revision ID: 3c1f0a9d2b71
Revises:
Create Date: 2026-10-17 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from pricewatch.database.types import PriceNumeric


# revision identifiers, used by Alembic.
revision: str = '3c1f0a9d2b71'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "token_prices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token", sa.String(length=10), nullable=False),
        sa.Column("price", PriceNumeric(), nullable=False),
        sa.Column("last_update", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_token_prices_id", "token_prices", ["id"])
    op.create_index("ix_token_prices_token", "token_prices", ["token"])
    op.create_index("ix_token_prices_last_update", "token_prices", ["last_update"])

    op.create_table(
        "price_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token", sa.String(length=10), nullable=False),
        sa.Column("target_price", PriceNumeric(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("triggered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_price_alerts_id", "price_alerts", ["id"])
    op.create_index("ix_price_alerts_token", "price_alerts", ["token"])
    op.create_index("ix_price_alerts_triggered", "price_alerts", ["triggered"])


def downgrade():
    op.drop_table("price_alerts")
    op.drop_table("token_prices")
