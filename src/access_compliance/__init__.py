"""Access compliance engine.

Tracks per-person access eligibility with an append-only change history
and recomputes the access delta (RESTRICT rows) from compliance
evaluation results.
"""

__version__ = "0.1.0"
