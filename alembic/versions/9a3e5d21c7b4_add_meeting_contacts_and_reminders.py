"""add meeting contacts and reminders

Revision ID: 9a3e5d21c7b4
Revises: 4c1f0b7a9d2e
Create Date: 2026-10-18 14:37:05.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '9a3e5d21c7b4'
down_revision: Union[str, Sequence[str], None] = '4c1f0b7a9d2e'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('recurring_meetings', sa.Column('owner_name', sa.String(), nullable=True))
    op.add_column('recurring_meetings', sa.Column('owner_email', sa.String(), nullable=True))
    op.add_column('recurring_meetings', sa.Column('owner_phone', sa.String(), nullable=True))

    op.add_column('meeting_occurrences', sa.Column('attended', sa.Boolean(), nullable=True))
    op.add_column('meeting_occurrences', sa.Column('meeting_summary', sa.Text(), nullable=True))
    op.add_column('meeting_occurrences', sa.Column('reminder_24h_sent_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column('meeting_occurrences', sa.Column('reminder_1h_sent_at', sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_column('meeting_occurrences', 'reminder_1h_sent_at')
    op.drop_column('meeting_occurrences', 'reminder_24h_sent_at')
    op.drop_column('meeting_occurrences', 'meeting_summary')
    op.drop_column('meeting_occurrences', 'attended')

    op.drop_column('recurring_meetings', 'owner_phone')
    op.drop_column('recurring_meetings', 'owner_email')
    op.drop_column('recurring_meetings', 'owner_name')
