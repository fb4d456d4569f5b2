"""
Per-tournament serialization.

Generation, advancement, result recording and cascade execution for one
tournament never interleave: a process-local lock keyed by tournament id,
plus a row lock on the tournament when the database supports it.

``tournament_transaction`` takes the process lock before opening the
transaction and releases it after the commit, so the next writer always
reads committed state. ``tournament_lock`` re-enters the same lock from the
services. Registry entries are dropped once nobody holds or waits on them.
"""
import threading
from contextlib import contextmanager

from sqlalchemy import text

_registry_lock = threading.Lock()


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


_locks: dict[str, _Entry] = {}


@contextmanager
def _held(tournament_id: str):
    with _registry_lock:
        entry = _locks.get(tournament_id)
        if entry is None:
            entry = _locks[tournament_id] = _Entry()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del _locks[tournament_id]


def lock_tournament_row(conn, tournament_id: str) -> None:
    if conn.dialect.name != "postgresql":
        return
    conn.execute(
        text("SELECT id FROM tournaments WHERE id = :id FOR UPDATE"),
        {"id": tournament_id},
    )


@contextmanager
def tournament_lock(conn, tournament_id: str):
    with _held(str(tournament_id)):
        lock_tournament_row(conn, tournament_id)
        yield conn


@contextmanager
def tournament_transaction(engine, tournament_id: str):
    """``engine.begin()`` with the tournament lock held until after commit or rollback."""
    with _held(str(tournament_id)):
        with engine.begin() as conn:
            lock_tournament_row(conn, tournament_id)
            yield conn
