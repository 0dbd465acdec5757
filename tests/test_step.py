"""
Tests for the step builder and candidate evaluation

Run with: pytest tests/
"""

from dataclasses import dataclass

import pytest
from pydantic import ValidationError as PydanticValidationError

from xray_sdk import StepBuilder, StepRecord, ValidationError
from xray_sdk.step import extract_metrics, item_label


def passes_under(limit):
    return lambda item, index: {
        "price_ok": {"passed": item["price"] < limit, "detail": f"{item['price']} < {limit}"},
    }


def test_builder_requires_name():
    """Empty or blank names are rejected at construction"""
    for name in ["", "   ", None]:
        with pytest.raises(ValidationError):
            StepBuilder(name)


def test_builder_assigns_id_and_timestamp():
    builder = StepBuilder("search")
    record = builder.build()

    assert record.id == builder.id
    assert record.id.startswith("step_")
    assert record.name == "search"
    assert record.created_at.tzinfo is not None


def test_fluent_setters_chain():
    builder = StepBuilder("rank")
    returned = (
        builder.input({"query": "laptop stand"})
        .output({"count": 3})
        .filters({"max_price": 100})
        .reasoning("Ranked by relevance")
        .select("PROD-1", "Highest score")
    )
    assert returned is builder

    record = builder.build()
    assert record.input == {"query": "laptop stand"}
    assert record.output == {"count": 3}
    assert record.filters == {"max_price": 100}
    assert record.reasoning == "Ranked by relevance"
    assert record.selection.id == "PROD-1"
    assert record.selection.reason == "Highest score"


def test_setters_overwrite_previous_value():
    record = StepBuilder("s").input({"a": 1}).input({"b": 2}).build()
    assert record.input == {"b": 2}


def test_metadata_is_shallow_merged():
    record = (
        StepBuilder("s")
        .metadata({"model": "gpt-4", "temperature": 0.7})
        .metadata({"temperature": 0.2, "latency_ms": 120})
        .build()
    )
    assert record.metadata == {"model": "gpt-4", "temperature": 0.2, "latency_ms": 120}


def test_metadata_rejects_non_mapping():
    with pytest.raises(TypeError):
        StepBuilder("s").metadata(["not", "a", "mapping"])


def test_metadata_rejects_non_string_keys():
    builder = StepBuilder("s").metadata({"ok": 1})
    with pytest.raises(ValidationError):
        builder.metadata({1: "a"})

    # The earlier metadata is untouched and the step still builds
    assert builder.build().metadata == {"ok": 1}


def test_build_omits_fields_never_set():
    record = StepBuilder("s").input({"x": 1}).build()

    assert record.to_dict().keys() == {"id", "name", "created_at", "input"}
    assert not record.has("output")
    assert not record.has("evaluations")


def test_build_keeps_fields_captured_as_none_or_empty():
    """Captured-but-empty is different from not captured"""
    record = StepBuilder("s").input(None).reasoning("").metadata({}).build()
    data = record.to_dict()

    assert data["input"] is None
    assert data["reasoning"] == ""
    assert data["metadata"] == {}
    assert "output" not in data


def test_build_is_a_snapshot():
    """Changing the builder or the payload after build() leaves the record alone"""
    payload = {"keywords": ["stand"]}
    builder = StepBuilder("s").input(payload).metadata({"a": 1})
    record = builder.build()

    payload["keywords"].append("riser")
    builder.input({"other": True}).metadata({"b": 2}).reasoning("later")

    assert record.input == {"keywords": ["stand"]}
    assert record.metadata == {"a": 1}
    assert not record.has("reasoning")


def test_record_is_frozen():
    record = StepBuilder("s").build()
    with pytest.raises(PydanticValidationError):
        record.name = "other"


def test_record_replace_returns_new_record():
    record = StepBuilder("s").input({"ssn": "123"}).build()
    redacted = record.replace(input="<redacted>")

    assert redacted.input == "<redacted>"
    assert redacted.id == record.id
    assert record.input == {"ssn": "123"}


def test_evaluate_qualification():
    """qualified is the AND of every filter result"""
    items = [{"id": "a", "price": 10, "rating": 4.5}, {"id": "b", "price": 999, "rating": 4.9}]

    def evaluator(item, index):
        return {
            "price_ok": {"passed": item["price"] < 100, "detail": ""},
            "rating_ok": {"passed": item["rating"] >= 4.0, "detail": ""},
        }

    record = StepBuilder("filter").evaluate(items, evaluator).build()

    assert [e.qualified for e in record.evaluations] == [True, False]
    assert record.evaluations[1].results["price_ok"].passed is False
    assert record.evaluations[1].results["rating_ok"].passed is True


def test_evaluate_with_no_filters_is_qualified():
    record = StepBuilder("filter").evaluate(["a", "b"], lambda item, index: {}).build()

    assert all(e.qualified for e in record.evaluations)
    assert all(e.results == {} for e in record.evaluations)


def test_evaluate_passes_index_and_keeps_order():
    seen = []

    def evaluator(item, index):
        seen.append((item, index))
        return {}

    record = StepBuilder("s").evaluate(["x", "y", "z"], evaluator).build()

    assert seen == [("x", 0), ("y", 1), ("z", 2)]
    assert [e.label for e in record.evaluations] == ["x", "y", "z"]
    assert len({e.id for e in record.evaluations}) == 3


def test_evaluate_rejects_non_mapping_result():
    with pytest.raises(TypeError):
        StepBuilder("s").evaluate([1], lambda item, index: True)


def test_evaluate_records_detail():
    record = StepBuilder("s").evaluate([{"id": "a", "price": 10}], passes_under(100)).build()
    assert record.evaluations[0].results["price_ok"].detail == "10 < 100"


def test_label_precedence():
    assert item_label("plain string") == "plain string"
    assert item_label({"title": "Pro Stand", "name": "stand", "id": "P1"}) == "Pro Stand"
    assert item_label({"name": "stand", "id": "P1"}) == "stand"
    assert item_label({"id": "P1", "label": "L"}) == "P1"
    assert item_label({"label": "L"}) == "L"
    assert item_label({"price": 10}) == '{"price": 10}'


def test_label_skips_empty_values():
    assert item_label({"title": "", "name": None, "id": "P1"}) == "P1"


def test_label_from_object_attributes():
    @dataclass
    class Product:
        id: str
        name: str

    assert item_label(Product(id="P1", name="Riser")) == "Riser"


def test_metrics_extraction():
    item = {"id": "a", "price": 10, "rating": 4.5, "reviews": "many", "score": True, "color": 3}
    assert extract_metrics(item) == {"price": 10, "rating": 4.5}


def test_metrics_absent_when_nothing_numeric():
    record = StepBuilder("s").evaluate([{"id": "a"}, "b"], lambda item, index: {}).build()

    for evaluation in record.evaluations:
        assert evaluation.metrics is None
        assert "metrics" not in evaluation.to_dict()


def test_step_summary():
    record = (
        StepBuilder("filter")
        .evaluate([{"id": "a", "price": 10}, {"id": "b", "price": 500}], passes_under(100))
        .select("a", "cheapest")
        .build()
    )
    summary = record.summary()

    assert summary["candidate_count"] == 2
    assert summary["qualified_count"] == 1
    assert summary["selected_id"] == "a"


def test_build_returns_step_record():
    assert isinstance(StepBuilder("s").build(), StepRecord)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
