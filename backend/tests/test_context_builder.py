"""Tests for chain-variable context building."""

import pytest

from integrations.http_transport import HttpResponse
from workflow.context_builder import ContextBuilder, build_context, prior_request_steps
from workflow.execution_log import ExecutionLog
from core.constants import StepStatus
from workflow.extractors import ExtractorEvaluator
from workflow.models import load_workflow
from workflow.templating import TemplateResolver, TemplateScope


def _request(step_id, extractors, endpoint="http://api.test/x"):
    return {"id": step_id, "type": "request", "endpoint": endpoint, "extractors": extractors}


def _token_extractor(default=None, variable="token"):
    extractor = {"type": "XPath", "path": "//token", "variable": variable}
    if default is not None:
        extractor["defaultValue"] = default
    return extractor


def _workflow(*steps):
    return load_workflow({"id": "wf", "name": "wf", "steps": list(steps)})


def _record(log, step_id, body):
    log.record("run-1", "wf", step_id, StepStatus.SUCCEEDED, response=HttpResponse(status_code=200, body=body))


@pytest.mark.unit
class TestBuildContext:

    def test_default_used_when_step_not_run(self):
        wf = _workflow(
            _request("login", [_token_extractor(default="PENDING")]),
            _request("orders", []),
        )
        assert build_context(wf.steps, 1, ExecutionLog(), wf.id) == {"token": "PENDING"}

    def test_no_default_and_no_response_leaves_key_absent(self):
        wf = _workflow(_request("login", [_token_extractor()]), _request("orders", []))
        assert "token" not in build_context(wf.steps, 1, ExecutionLog(), wf.id)

    def test_value_from_recorded_response(self):
        log = ExecutionLog()
        wf = _workflow(_request("login", [_token_extractor(default="PENDING")]), _request("orders", []))
        _record(log, "login", "<r><token>abc123</token></r>")
        assert build_context(wf.steps, 1, log, wf.id) == {"token": "abc123"}

    def test_extraction_failure_falls_back_to_default_with_warning(self):
        log = ExecutionLog()
        wf = _workflow(_request("login", [_token_extractor(default="PENDING")]), _request("orders", []))
        _record(log, "login", "<r><other/></r>")
        built = ContextBuilder.build(wf.steps, 1, log, wf.id)
        assert built.variables == {"token": "PENDING"}
        assert built.provenance["token"].startswith("default")
        assert len(built.warnings) == 1

    def test_extraction_failure_without_default_warns_and_leaves_unbound(self):
        log = ExecutionLog()
        wf = _workflow(_request("login", [_token_extractor()]), _request("orders", []))
        _record(log, "login", "not xml")
        built = ContextBuilder.build(wf.steps, 1, log, wf.id)
        assert built.variables == {}
        assert "produced no value" in built.warnings[0]

    def test_response_from_other_workflow_not_visible(self):
        log = ExecutionLog()
        wf = _workflow(_request("login", [_token_extractor(default="PENDING")]), _request("orders", []))
        log.record(
            "run-other", "wf-other", "login", StepStatus.SUCCEEDED,
            response=HttpResponse(status_code=200, body="<r><token>SECRET</token></r>"),
        )
        assert build_context(wf.steps, 1, log, wf.id) == {"token": "PENDING"}

    def test_first_producer_wins(self):
        log = ExecutionLog()
        wf = _workflow(
            _request("first", [_token_extractor()]),
            _request("second", [_token_extractor()]),
            _request("third", []),
        )
        _record(log, "first", "<r><token>a</token></r>")
        _record(log, "second", "<r><token>b</token></r>")
        assert build_context(wf.steps, 2, log, wf.id) == {"token": "a"}

    def test_later_steps_not_visible(self):
        log = ExecutionLog()
        wf = _workflow(_request("current", []), _request("later", [_token_extractor(default="x")]))
        assert build_context(wf.steps, 0, log, wf.id) == {}

    def test_provenance_names_the_step(self):
        log = ExecutionLog()
        wf = _workflow(_request("login", [_token_extractor()]), _request("orders", []))
        _record(log, "login", "<r><token>abc</token></r>")
        assert ContextBuilder.build(wf.steps, 1, log, wf.id).provenance == {"token": "extracted from login"}

    def test_rendered_value_equals_direct_evaluation(self):
        log = ExecutionLog()
        wf = _workflow(_request("login", [_token_extractor()]), _request("orders", []))
        body = "<r><token>abc123</token></r>"
        _record(log, "login", body)

        context = build_context(wf.steps, 1, log, wf.id)
        rendered = TemplateResolver().resolve("${token}", TemplateScope(chain_variables=context))
        direct = ExtractorEvaluator.evaluate(
            wf.steps[0].extractors[0], HttpResponse(status_code=200, body=body)
        )
        assert rendered == direct == "abc123"


@pytest.mark.unit
class TestPriorSteps:

    @pytest.fixture
    def workflow(self):
        return _workflow(
            _request("top", [_token_extractor(variable="a")]),
            {"id": "loop", "type": "loop", "loopType": "count", "count": 1, "loopSteps": [
                _request("inner-1", [_token_extractor(variable="b")]),
                _request("inner-2", []),
                _request("inner-3", [_token_extractor(variable="c")]),
            ]},
            _request("after", []),
        )

    def test_inside_loop_body(self, workflow):
        ids = [s.id for s in prior_request_steps(workflow.steps, (1, 1))]
        assert ids == ["top", "inner-1"]

    def test_after_loop_includes_loop_body(self, workflow):
        ids = [s.id for s in prior_request_steps(workflow.steps, 2)]
        assert ids == ["top", "inner-1", "inner-2", "inner-3"]

    def test_first_step_sees_nothing(self, workflow):
        assert list(prior_request_steps(workflow.steps, 0)) == []
