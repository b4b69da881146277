"""Statement counting for verifying that loaders stay N+1 free."""
import logging
from typing import List

from sqlalchemy import event
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


class QueryCounter:
    """
    Count the SQL statements an engine executes while the context is active.

        with QueryCounter(engine) as counter:
            store.list_all_with_relations({"platforms"})
        assert counter.count <= 3
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.statements: List[str] = []

    @property
    def count(self) -> int:
        return len(self.statements)

    def _on_execute(self, conn, cursor, statement, parameters, context, executemany):
        self.statements.append(statement)

    def __enter__(self) -> "QueryCounter":
        self.statements = []
        event.listen(self.engine, "before_cursor_execute", self._on_execute)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        event.remove(self.engine, "before_cursor_execute", self._on_execute)
        logger.debug(f"QueryCounter observed {self.count} statements")
