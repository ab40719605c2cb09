"""
State models supporting the query workflow.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class WorkflowPhase(str, Enum):
    IDLE = "idle"
    QUERYING = "querying"
    PENDING_CONFIRMATION = "pending_confirmation"


@dataclass(slots=True)
class PendingQuery:
    """An explanation that has been retrieved but not yet saved."""

    query: str
    result: str
    category: Optional[str] = None
