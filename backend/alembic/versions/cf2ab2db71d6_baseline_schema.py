"""baseline_schema

Tiers, users, user-tier links, feature overrides and coupons.

Revision ID: cf2ab2db71d6
Revises:
Create Date: 2026-10-18 09:12:31.114207

"""
from typing import Sequence, Union

from alembic import op

from billing_engine.db_base import Base
import billing_engine.models  # noqa: F401 - required to register all model metadata


# revision identifiers, used by Alembic.
revision: str = 'cf2ab2db71d6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
