from datetime import UTC, datetime
from typing import Any

import pytest

from query_manager.v1.core.exceptions import (
    HandlerError,
    NotFoundError,
    UnknownJobTypeError,
    ValidationError,
)
from query_manager.v1.core.registries import JobRegistry
from query_manager.v1.infra.jobs.dispatcher import JobDispatcher
from query_manager.v1.infra.jobs.handlers import QueryJobHandler, load_collaborator
from query_manager.v1.infra.jobs.registry_init import (
    QUERY_JOB,
    REPORT_JOB,
    register_job_handlers,
)


class TimestampHandler:
    payload_model = None

    async def handle(self, payload: dict[str, Any]) -> Any:
        return {"generated_at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)}


def test_known_types(dispatcher):
    assert set(dispatcher.known_types()) == {QUERY_JOB, REPORT_JOB}


def test_handler_for_unknown_type(dispatcher):
    with pytest.raises(UnknownJobTypeError) as exc_info:
        dispatcher.handler_for("export")

    assert exc_info.value.status_code == 422
    assert exc_info.value.job_type == "export"


def test_validate_normalises_payload(dispatcher):
    payload = dispatcher.validate(QUERY_JOB, {"query_id": "q1"})

    assert payload == {"query_id": "q1", "parameters": {}}


def test_validate_rejects_unknown_type(dispatcher):
    with pytest.raises(ValidationError, match="Unknown job type: export"):
        dispatcher.validate("export", {})


def test_validate_rejects_bad_payload(dispatcher):
    with pytest.raises(ValidationError) as exc_info:
        dispatcher.validate(REPORT_JOB, {"parameters": {}})

    errors = exc_info.value.details["errors"]
    assert errors[0]["loc"] == ["report_id"]


async def test_dispatch_query(dispatcher, query_executor):
    result = await dispatcher.dispatch(
        QUERY_JOB, {"query_id": "q1", "parameters": {"status": "active"}}
    )

    assert result == [{"id": 1, "status": "active"}]
    assert query_executor.calls == [("q1", {"status": "active"})]


async def test_dispatch_report(dispatcher, report_generator):
    result = await dispatcher.dispatch(REPORT_JOB, {"report_id": "monthly"})

    assert result["filename"] == "monthly.csv"
    assert result["content_type"] == "text/csv"
    assert report_generator.calls == [("monthly", {})]


async def test_dispatch_unknown_type(dispatcher):
    with pytest.raises(UnknownJobTypeError):
        await dispatcher.dispatch("export", {})


async def test_dispatch_passes_application_errors_through(dispatcher):
    with pytest.raises(NotFoundError, match="Query missing not found"):
        await dispatcher.dispatch(QUERY_JOB, {"query_id": "missing"})


async def test_dispatch_wraps_unexpected_errors(dispatcher, query_executor):
    query_executor.error = ConnectionError("database unreachable")

    with pytest.raises(HandlerError, match="database unreachable") as exc_info:
        await dispatcher.dispatch(QUERY_JOB, {"query_id": "q1"})

    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert exc_info.value.details["exception"] == "ConnectionError"


async def test_dispatch_encodes_result():
    registry = JobRegistry()
    registry.register("stamp", TimestampHandler())

    result = await JobDispatcher(registry).dispatch("stamp", {})

    assert result == {"generated_at": "2024-01-02T03:04:05+00:00"}


async def test_unconfigured_collaborator_fails_attempt():
    registry = JobRegistry()
    register_job_handlers(registry=registry)
    dispatcher = JobDispatcher(registry)

    with pytest.raises(HandlerError, match="Query execution is not configured"):
        await dispatcher.dispatch(QUERY_JOB, {"query_id": "q1"})
    with pytest.raises(HandlerError, match="Report generation is not configured"):
        await dispatcher.dispatch(REPORT_JOB, {"report_id": "r1"})


def test_query_handler_payload_model():
    assert QueryJobHandler(None).payload_model.model_fields.keys() == {
        "query_id",
        "parameters",
    }


class TestLoadCollaborator:
    def test_empty_path(self):
        assert load_collaborator(None) is None
        assert load_collaborator("") is None

    def test_instantiates_classes(self):
        from collections import OrderedDict

        assert isinstance(load_collaborator("collections:OrderedDict"), OrderedDict)

    def test_returns_objects_as_is(self):
        import json

        assert load_collaborator("json:dumps") is json.dumps

    @pytest.mark.parametrize(
        "path", ["json", "json:", ":dumps", "json:missing", "no_such_module:thing"]
    )
    def test_rejects_bad_paths(self, path):
        with pytest.raises(ValueError):
            load_collaborator(path)
