"""Compliance source adapters."""

from access_compliance.sources.base import ComplianceSource, NonComplianceFact
from access_compliance.sources.memory import StaticComplianceSource
from access_compliance.sources.sql_view import SqlViewComplianceSource

__all__ = [
    "ComplianceSource",
    "NonComplianceFact",
    "SqlViewComplianceSource",
    "StaticComplianceSource",
]
