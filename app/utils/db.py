from contextlib import contextmanager
import logging
from models import db


@contextmanager
def transactional(message="DB transaction failed"):
    """Context manager to wrap a database transaction."""
    try:
        yield
        db.session.commit()
    except Exception as e:
        logging.error(f"{message}: %s", e, exc_info=True)
        db.session.rollback()
        raise


def conditional_add(column, pk_column, pk_value, delta, *, floor=0) -> bool:
    """Compare-and-set ``column += delta`` on one row, refusing to go below ``floor``.

    The guard is part of the UPDATE's WHERE clause so two writers cannot both
    pass a check against a stale read. Returns False when the guard rejects.
    Does NOT commit.
    """
    db.session.flush()
    table = column.table
    stmt = table.update().where(pk_column == pk_value).values({column.name: column + delta})
    if delta < 0:
        stmt = stmt.where(column + delta >= floor)
    result = db.session.execute(stmt)
    return result.rowcount == 1


def expire_row(model, pk, *attrs):
    """Drop cached attribute values after a Core-level update of ``model``."""
    obj = db.session.identity_map.get(db.session.identity_key(model, pk))
    if obj is not None:
        db.session.expire(obj, list(attrs) or None)
