"""HTTP API for eligibility upserts and access delta recompute."""
