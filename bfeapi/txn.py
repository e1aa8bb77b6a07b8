"""Transaction helpers over DB-API connections."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable


class TxnStorager(ABC):
    """Runs a unit of work atomically."""

    @abstractmethod
    def atom_execute(self, do: Callable[[], Any]) -> Any:
        """Run do() atomically and return its result; errors propagate."""


@dataclass(frozen=True)
class Op:
    """Options for obtaining a database context."""

    block_write: bool = False
    open_txn: bool = False


BLOCK_WRITE = Op(block_write=True)
OPEN_TXN = Op(open_txn=True)


def want_block_write(*args: Op) -> bool:
    return any(op.block_write for op in args)


def want_open_txn(*args: Op) -> bool:
    return any(op.open_txn for op in args)


class DBContext:
    """A connection plus the cursor of the transaction opened on it."""

    def __init__(self, conn):
        self.conn = conn
        self.tx = None

    def begin_trans(self):
        """Open a transaction unless one is already open; return its cursor."""
        if self.tx is None:
            self.tx = self.conn.cursor()
        return self.tx


def _finish(conn, exc: BaseException | None) -> None:
    if exc is None:
        conn.commit()
    elif "invalid connection" not in str(exc):
        conn.rollback()


def rdb_txn_execute(dc: DBContext, handler: Callable[[DBContext], Any]) -> Any:
    """Run handler inside dc's transaction, then commit or roll back."""
    dc.begin_trans()
    try:
        result = handler(dc)
    except Exception as exc:
        _finish(dc.conn, exc)
        raise
    _finish(dc.conn, None)
    return result


def transaction(conn, do: Callable[[Any], Any]) -> Any:
    """Run do(conn), committing on success and rolling back on error."""
    try:
        result = do(conn)
    except Exception:
        conn.rollback()
        raise
    conn.commit()
    return result


def duplicate_entry_error(err: BaseException | None) -> bool:
    """Whether err reports a duplicate-key insert."""
    if err is None:
        return False
    if "Error 1062: Duplicate entry" in str(err):
        return True
    return bool(err.args) and err.args[0] == 1062