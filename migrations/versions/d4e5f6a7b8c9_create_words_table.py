"""create words table with progress columns

Revision ID: d4e5f6a7b8c9
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'd4e5f6a7b8c9'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the words table."""
    op.create_table('words',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('expression', sa.String(), nullable=False),
        sa.Column('reading', sa.String(), nullable=False),
        sa.Column('meaning', sa.String(), nullable=False),
        sa.Column('level', sa.String(), nullable=False),
        sa.Column('practice_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('familiar', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('user_marked', sa.Boolean(), nullable=False, server_default='0'),
        sa.CheckConstraint("level IN ('n1', 'n2', 'n3', 'n4', 'n5')", name='ck_words_level'),
        sa.CheckConstraint('practice_count >= 0', name='ck_words_practice_count'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )


def downgrade() -> None:
    """Drop the words table."""
    op.drop_table('words')
