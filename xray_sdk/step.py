"""
X-Ray Step Builder

The mutable side of a StepRecord. A builder is created by the session for
each step, handed to middleware and to the caller's callback, and finally
turned into an immutable StepRecord by `build()`.

Usage:
    builder = StepBuilder("price_filter")
    builder.input({"max_price": 100}).evaluate(
        products,
        lambda p, i: {"price_ok": {"passed": p["price"] < 100, "detail": ""}},
    )
    record = builder.build()
"""

import copy
import json
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from pydantic import BaseModel

from .errors import ValidationError
from .models import CandidateEvaluation, FilterResult, Selection, StepRecord
from .utils import generate_id, utcnow
from .validation import validate_step_name

# Checked in order; the first present attribute becomes the label
LABEL_FIELDS = ("title", "name", "id", "label")

# Numeric attributes copied into CandidateEvaluation.metrics when present
METRIC_FIELDS = ("price", "rating", "reviews", "score", "count", "value")

Evaluator = Callable[[Any, int], Mapping]


class StepBuilder:
    """
    Accumulates one step's fields.

    Every setter overwrites its field (metadata shallow-merges) and returns the
    builder for chaining. Only fields that were set end up in the record.
    """

    def __init__(self, name: str):
        validate_step_name(name)
        self._fields: Dict[str, Any] = {
            "id": generate_id("step"),
            "name": name,
            "created_at": utcnow(),
        }

    @property
    def id(self) -> str:
        return self._fields["id"]

    @property
    def name(self) -> str:
        return self._fields["name"]

    def get(self, field_name: str, default: Any = None) -> Any:
        """Current value of a field; lets middleware inspect callback output"""
        return self._fields.get(field_name, default)

    def input(self, data: Any) -> "StepBuilder":
        """Record inputs to the step"""
        self._fields["input"] = data
        return self

    def output(self, data: Any) -> "StepBuilder":
        """Record outputs of the step"""
        self._fields["output"] = data
        return self

    def filters(self, data: Any) -> "StepBuilder":
        """Describe applied filters or rules"""
        self._fields["filters"] = data
        return self

    def reasoning(self, text: str) -> "StepBuilder":
        """Add free-form explanation"""
        self._fields["reasoning"] = text
        return self

    def select(self, id: str, reason: str) -> "StepBuilder":
        """Record the final selection among evaluated candidates"""
        self._fields["selection"] = Selection(id=id, reason=reason)
        return self

    def metadata(self, data: Mapping) -> "StepBuilder":
        """Merge arbitrary metadata into what was recorded so far"""
        if not isinstance(data, Mapping):
            raise TypeError("metadata must be a mapping")
        if not all(isinstance(key, str) for key in data):
            raise ValidationError("metadata keys must be strings")
        merged = dict(self._fields.get("metadata") or {})
        merged.update(data)
        self._fields["metadata"] = merged
        return self

    def evaluate(self, items: Sequence[Any], evaluator: Evaluator) -> "StepBuilder":
        """
        Evaluate candidates against named filters.

        Args:
            items: Candidates, in the order they should be recorded
            evaluator: Called as evaluator(item, index); returns a mapping of
                filter name to {"passed": bool, "detail": str}

        A candidate is qualified when every filter passed (and trivially when
        there are no filters).
        """
        self._fields["evaluations"] = [
            evaluate_candidate(item, index, evaluator)
            for index, item in enumerate(items)
        ]
        return self

    def build(self) -> StepRecord:
        """Snapshot the builder into an immutable StepRecord"""
        if not self._fields.get("name"):
            raise ValidationError("Step name is required")
        return StepRecord(**copy.deepcopy(self._fields))


def evaluate_candidate(item: Any, index: int, evaluator: Evaluator) -> CandidateEvaluation:
    raw = evaluator(item, index)
    if not isinstance(raw, Mapping):
        raise TypeError(
            f"evaluator must return a mapping of filter results, got {type(raw).__name__}"
        )
    results = {
        str(filter_name): _to_filter_result(result)
        for filter_name, result in raw.items()
    }

    fields: Dict[str, Any] = {
        "id": generate_id("eval"),
        "label": item_label(item),
        "results": results,
        "qualified": all(r.passed for r in results.values()),
    }
    metrics = extract_metrics(item)
    if metrics is not None:
        fields["metrics"] = metrics
    return CandidateEvaluation(**fields)


def _to_filter_result(result: Any) -> FilterResult:
    if isinstance(result, FilterResult):
        return result
    if isinstance(result, Mapping):
        return FilterResult(
            passed=bool(result.get("passed")),
            detail=str(result.get("detail", "")),
        )
    raise TypeError(f"filter result must be a mapping, got {type(result).__name__}")


def _lookup(item: Any, key: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def item_label(item: Any) -> str:
    """Strings label themselves; objects use title, name, id, label, else a dump"""
    if isinstance(item, str):
        return item
    for key in LABEL_FIELDS:
        value = _lookup(item, key)
        if value is not None and value != "":
            return str(value)
    return json.dumps(item, default=_json_default)


def extract_metrics(item: Any) -> Optional[Dict[str, float]]:
    if isinstance(item, str) or item is None:
        return None
    metrics = {}
    for key in METRIC_FIELDS:
        value = _lookup(item, key)
        # bool is an int subclass but not a metric
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            metrics[key] = value
    return metrics or None


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if hasattr(value, "__dict__"):
        return vars(value)
    return str(value)
