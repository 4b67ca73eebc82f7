"""Tests for the operation / target / result value types."""

import pytest
from pydantic import ValidationError

from query_harness import config
from query_harness.models import (
    MAX_PAGE_SIZE,
    ConnectionTarget,
    Operation,
    OperationKind,
    OperationResult,
)


class TestConnectionTarget:
    def test_from_env_uses_config(self, monkeypatch):
        monkeypatch.setattr(config, "MONGO_URI", "mongodb://db.example:27017")
        monkeypatch.setattr(config, "DATABASE_NAME", "shop")
        monkeypatch.setattr(config, "COLLECTION_NAME", "items")

        target = ConnectionTarget.from_env()

        assert target.mongo_uri == "mongodb://db.example:27017"
        assert target.describe() == "shop.items"

    def test_is_immutable(self, target):
        with pytest.raises(ValidationError):
            target.database_name = "other"

    def test_rejects_empty_names(self):
        with pytest.raises(ValidationError):
            ConnectionTarget(mongo_uri="mongodb://x", database_name="", collection_name="c")


class TestOperation:
    def test_update_requires_update_document(self):
        with pytest.raises(ValueError):
            Operation(label="u", kind=OperationKind.UPDATE, filter={"title": "1984"})

    def test_aggregate_requires_pipeline(self):
        with pytest.raises(ValueError):
            Operation(label="a", kind="aggregate")

    def test_index_requires_keys(self):
        with pytest.raises(ValueError):
            Operation(label="i", kind="index")

    def test_sort_direction_must_be_one_or_minus_one(self):
        with pytest.raises(ValueError):
            Operation.query("bad sort", sort=[("price", 2)])

    def test_is_immutable(self):
        op = Operation.query("q", {"genre": "Fiction"})
        with pytest.raises(ValidationError):
            op.limit = 5

    def test_paginate_computes_skip_and_limit(self):
        op = Operation.paginate("page 2", page=2, per_page=5)
        assert op.kind == OperationKind.QUERY
        assert (op.skip, op.limit) == (5, 5)

    def test_paginate_clamps_inputs(self):
        op = Operation.paginate("clamped", page=0, per_page=1000)
        assert op.skip == 0
        assert op.limit == MAX_PAGE_SIZE

    def test_parses_from_json_payload(self):
        op = Operation.model_validate({
            "label": "compound",
            "kind": "index",
            "index_keys": [["author", 1], ["published_year", 1]],
        })
        assert op.index_keys == [("author", 1), ("published_year", 1)]

    def test_explain_defaults_to_execution_stats(self):
        assert Operation.explain("e", {"genre": "Fiction"}).verbosity == "executionStats"

    def test_index_accepts_special_types(self):
        op = Operation.index("search", [("title", "text")])
        assert op.index_keys == [("title", "text")]
        assert Operation.index("geo", [("location", "2dsphere"), ("genre", 1)]).index_keys[0][1] == "2dsphere"

    @pytest.mark.parametrize("keys", [[("title", "bogus")], [("title", "1")], [("title", 0)]])
    def test_index_rejects_unknown_directions(self, keys):
        with pytest.raises(ValueError):
            Operation.index("bad", keys)

    def test_sort_rejects_index_types(self):
        with pytest.raises(ValueError):
            Operation.query("bad sort", sort=[("title", "text")])


class TestOperationResult:
    def test_failure_from_exception(self):
        op = Operation.query("q")
        result = OperationResult.failure(op, TimeoutError("late"), 12.5, timed_out=True)
        assert result.success is False
        assert result.timed_out is True
        assert result.error == "late"
        assert result.error_type == "TimeoutError"
        assert result.kind == OperationKind.QUERY
