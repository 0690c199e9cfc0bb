from sqlalchemy import event, inspect, text
from sqlalchemy.orm import Session

from app.models.aggregation_snapshot import AggregationSnapshot


class ImmutableRowError(Exception):
    pass


def table_exists(engine, table_name: str) -> bool:
    if engine is None:
        return False
    return inspect(engine).has_table(table_name)


SNAPSHOT_TRIGGER_DDL = """
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


def install_snapshot_immutability(engine) -> None:
    """
    Postgres-only: install triggers to block UPDATE/DELETE on aggregation_snapshots.
    Safe to run multiple times (idempotent).
    """
    if engine is None:
        return

    dialect = getattr(engine, "dialect", None)
    if dialect is None or getattr(dialect, "name", "") != "postgresql":
        return

    if not table_exists(engine, "aggregation_snapshots"):
        return

    with engine.begin() as conn:
        conn.execute(text(SNAPSHOT_TRIGGER_DDL))


@event.listens_for(Session, "before_flush")
def _block_snapshot_mutation(session, flush_context, instances):
    for obj in session.dirty:
        if isinstance(obj, AggregationSnapshot) and session.is_modified(obj, include_collections=False):
            raise ImmutableRowError("aggregation_snapshots is immutable")
    for obj in session.deleted:
        if isinstance(obj, AggregationSnapshot):
            raise ImmutableRowError("aggregation_snapshots is immutable")
