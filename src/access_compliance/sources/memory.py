"""In-memory compliance source for local runs and tests."""

from __future__ import annotations

from typing import Iterable

from access_compliance.sources.base import NonComplianceFact


class StaticComplianceSource:
    """Serves a fixed list of facts.

    ``available=False`` simulates a source that is down or not deployed.
    """

    source_name = "static"

    def __init__(
        self,
        facts: Iterable[NonComplianceFact | tuple[str | None, str | None, str | None]] = (),
        *,
        available: bool = True,
    ):
        self.available = available
        self._facts: list[NonComplianceFact] = []
        self.replace(facts)

    def replace(
        self,
        facts: Iterable[NonComplianceFact | tuple[str | None, str | None, str | None]],
    ) -> None:
        """Swap the served facts."""
        self._facts = [
            fact if isinstance(fact, NonComplianceFact) else NonComplianceFact(*fact)
            for fact in facts
        ]

    def is_available(self) -> bool:
        return self.available

    def fetch_facts(self) -> list[NonComplianceFact]:
        return list(self._facts)
