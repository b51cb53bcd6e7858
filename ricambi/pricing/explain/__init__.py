# ricambi/pricing/explain/__init__.py
from __future__ import annotations

from .breakdown_builder import Breakdown, BreakdownBuilder, BreakdownEntry, BreakdownKind, CheckStatus

__all__ = [
    "Breakdown",
    "BreakdownBuilder",
    "BreakdownEntry",
    "BreakdownKind",
    "CheckStatus",
]
