"""Compliance source backed by a database view or table.

The view must expose employee_id, card_number and requirement_code
columns. Only the shape is relied on; the evaluation logic behind the
view is owned elsewhere.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from sqlalchemy import column, inspect, select, table
from sqlalchemy.exc import SQLAlchemyError

from access_compliance.errors import SOURCE_UNAVAILABLE, PreconditionFailedError
from access_compliance.sources.base import NonComplianceFact

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SqlViewComplianceSource:
    """Reads non-compliance facts from ``[schema.]view_name``."""

    source_name = "sql_view"

    def __init__(self, engine: Engine, view_name: str):
        schema, _, name = view_name.rpartition(".")
        if not _IDENTIFIER.match(name) or (schema and not _IDENTIFIER.match(schema)):
            raise PreconditionFailedError(
                f"Invalid compliance view name: {view_name!r}. "
                "Expected [schema.]view using letters, digits and underscores.",
                code=SOURCE_UNAVAILABLE,
                collaborator="compliance_source",
            )
        self.engine = engine
        self.schema = schema or None
        self.view_name = name
        self._view = table(
            name,
            column("employee_id"),
            column("card_number"),
            column("requirement_code"),
            schema=self.schema,
        )

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.view_name}" if self.schema else self.view_name

    def is_available(self) -> bool:
        """Check the view (or a table of that name) exists."""
        try:
            inspector = inspect(self.engine)
            if self.view_name in inspector.get_view_names(schema=self.schema):
                return True
            return inspector.has_table(self.view_name, schema=self.schema)
        except SQLAlchemyError:
            logger.exception("Compliance source %s could not be inspected", self.qualified_name)
            return False

    def fetch_facts(self) -> list[NonComplianceFact]:
        stmt = select(
            self._view.c.employee_id,
            self._view.c.card_number,
            self._view.c.requirement_code,
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return [NonComplianceFact(row[0], row[1], row[2]) for row in rows]
