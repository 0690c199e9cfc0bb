"""aggregation_snapshot_immutability_triggers

Revision ID: 8c2f4e61d9b7
Revises: 3b9e1c7d2a40
Create Date: 2026-10-12 09:31:05.884102

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8c2f4e61d9b7'
down_revision: Union[str, Sequence[str], None] = '3b9e1c7d2a40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    if op.get_bind().dialect.name != "postgresql":
        return

    op.execute(
        """
        CREATE OR REPLACE FUNCTION aggregation_snapshots_block_mutation()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'aggregation_snapshots is immutable';
        END;
        $$ LANGUAGE plpgsql;

        DROP TRIGGER IF EXISTS trg_aggregation_snapshots_block_update ON aggregation_snapshots;
        CREATE TRIGGER trg_aggregation_snapshots_block_update
        BEFORE UPDATE ON aggregation_snapshots
        FOR EACH ROW
        EXECUTE FUNCTION aggregation_snapshots_block_mutation();

        DROP TRIGGER IF EXISTS trg_aggregation_snapshots_block_delete ON aggregation_snapshots;
        CREATE TRIGGER trg_aggregation_snapshots_block_delete
        BEFORE DELETE ON aggregation_snapshots
        FOR EACH ROW
        EXECUTE FUNCTION aggregation_snapshots_block_mutation();
        """
    )


def downgrade() -> None:
    """Downgrade schema."""
    if op.get_bind().dialect.name != "postgresql":
        return

    op.execute(
        """
        DROP TRIGGER IF EXISTS trg_aggregation_snapshots_block_delete ON aggregation_snapshots;
        DROP TRIGGER IF EXISTS trg_aggregation_snapshots_block_update ON aggregation_snapshots;
        DROP FUNCTION IF EXISTS aggregation_snapshots_block_mutation();
        """
    )
