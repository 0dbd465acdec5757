"""
X-Ray SDK Data Models

These models define the structure of X-Ray traces. Payloads (input, output,
filters, metadata) are opaque to the SDK: they are stored and returned as-is,
never interpreted beyond the metric extraction done by the step builder.

Presence matters: a StepRecord only carries the fields that were actually
captured, so storage layers can tell "not captured" apart from "captured as
None". Pydantic's `model_fields_set` tracks this for us.
"""

import copy
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FilterResult(BaseModel):
    """Outcome of one named filter applied to one candidate"""
    passed: bool
    detail: str = ""


class Selection(BaseModel):
    """The candidate finally chosen by a step, and why"""
    model_config = ConfigDict(frozen=True)

    id: str  # Identifier of the selected item
    reason: str  # Human-readable explanation


class CandidateEvaluation(BaseModel):
    """
    How one candidate fared against a step's named filters.

    Examples:
    - results={"price_range": {passed: True}, "min_rating": {passed: False}}
      gives qualified=False
    - results={} gives qualified=True (nothing to fail)
    """
    id: str
    label: str  # Display name derived from the candidate
    metrics: Optional[Dict[str, float]] = None  # Omitted when nothing numeric was found
    results: Dict[str, FilterResult] = Field(default_factory=dict)
    qualified: bool

    def to_dict(self, mode: str = "python") -> Dict[str, Any]:
        return self.model_dump(mode=mode, exclude_unset=True)


class StepRecord(BaseModel):
    """
    Immutable snapshot of one decision point within an execution.

    Only `id`, `name` and `created_at` are always present. Everything else is
    present exactly when the step builder captured it.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    created_at: datetime

    input: Any = None
    output: Any = None
    filters: Any = None
    evaluations: Optional[List[CandidateEvaluation]] = None
    selection: Optional[Selection] = None
    reasoning: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def has(self, field_name: str) -> bool:
        """True if the field was captured (even if captured as None)"""
        return field_name in self.model_fields_set

    def to_dict(self, mode: str = "python") -> Dict[str, Any]:
        """Convert to dictionary, leaving out fields that were never captured"""
        return self.model_dump(mode=mode, exclude_unset=True)

    def replace(self, **changes: Any) -> "StepRecord":
        """
        Return a new record with `changes` applied.

        Used by after-step-created hooks that rewrite fields (e.g. redaction).
        Changed fields count as captured.
        """
        data = self.to_dict()
        data.update(copy.deepcopy(changes))
        return StepRecord.model_validate(data)

    def summary(self) -> Dict[str, Any]:
        """
        Returns a lightweight summary instead of full data.
        Useful for steps that evaluated thousands of candidates.
        """
        evaluations = self.evaluations or []
        return {
            "id": self.id,
            "name": self.name,
            "candidate_count": len(evaluations),
            "qualified_count": sum(1 for e in evaluations if e.qualified),
            "selected_id": self.selection.id if self.selection else None,
        }


class Execution(BaseModel):
    """
    One complete recorded run of a traced pipeline.

    Lifecycle:
    - created in memory by a session (no completed_at, no steps)
    - steps appended in order, each after it has been persisted
    - completed_at set exactly once; after that no more steps
    """
    id: str
    name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    steps: List[StepRecord] = Field(default_factory=list)
    tags: Optional[List[str]] = None  # Categorization, e.g. ["production", "v2"]
    notes: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def copy(self) -> "Execution":
        """Deep value copy; mutating it never affects the original"""
        return self.model_copy(deep=True)

    def to_dict(self, mode: str = "python") -> Dict[str, Any]:
        data = self.model_dump(mode=mode, exclude_unset=True, exclude={"steps"})
        data["steps"] = [s.to_dict(mode=mode) for s in self.steps]
        return data
