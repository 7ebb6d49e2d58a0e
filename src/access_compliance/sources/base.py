"""Protocol and types for compliance evaluation sources.

The recomputer pulls currently-unmet requirements through a
ComplianceSource without knowing where they come from.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol


@dataclass(frozen=True)
class NonComplianceFact:
    """One unmet requirement for one employee/card.

    Sources may yield nulls and duplicates; incomplete facts are dropped
    before aggregation.
    """

    employee_id: str | None
    card_number: str | None
    requirement_code: str | None

    @property
    def is_complete(self) -> bool:
        """True when every field is present and non-blank."""
        return all(
            value is not None and str(value).strip() != ""
            for value in (self.employee_id, self.card_number, self.requirement_code)
        )


class ComplianceSource(Protocol):
    """Protocol for compliance evaluation adapters."""

    source_name: str

    def is_available(self) -> bool:
        """Return True if the source can be queried right now."""
        ...

    def fetch_facts(self) -> Iterable[NonComplianceFact]:
        """Return all current non-compliance facts.

        No ordering is guaranteed. Rows may repeat and may carry nulls.
        """
        ...
