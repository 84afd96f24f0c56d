"""Database query utility functions."""
from typing import Any, Dict, List, Sequence, Type, TypeVar

from sqlalchemy.orm import Session

from inpwatch.constants import UPSERT_CHUNK_SIZE

T = TypeVar("T")


def dialect_name(db: Session) -> str:
    """Name of the SQL dialect the session is bound to."""
    return db.get_bind().dialect.name


def upsert(
    db: Session,
    model: Type[T],
    rows: Sequence[Dict[str, Any]],
    key_columns: Sequence[str],
) -> int:
    """
    Insert rows, replacing non-key columns of rows whose key already exists.

    Uses the dialect's native upsert where available and falls back to
    ``Session.merge`` otherwise. Does not commit.

    Args:
        db: Database session
        model: SQLAlchemy model class
        rows: Column dicts, each containing every key column
        key_columns: Primary/unique key column names

    Returns:
        Number of rows written
    """
    if not rows:
        return 0

    name = dialect_name(db)
    update_columns = [c for c in rows[0] if c not in key_columns]

    for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
        chunk: List[Dict[str, Any]] = list(rows[start:start + UPSERT_CHUNK_SIZE])

        if name in ("postgresql", "sqlite"):
            if name == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            else:
                from sqlalchemy.dialects.sqlite import insert
            stmt = insert(model).values(chunk)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(key_columns),
                set_={c: stmt.excluded[c] for c in update_columns},
            )
            db.execute(stmt)
        elif name in ("mysql", "mariadb"):
            from sqlalchemy.dialects.mysql import insert
            stmt = insert(model).values(chunk)
            stmt = stmt.on_duplicate_key_update(
                {c: stmt.inserted[c] for c in update_columns}
            )
            db.execute(stmt)
        else:
            for row in chunk:
                db.merge(model(**row))

    return len(rows)
