import json

import pytest
from conftest import StubProvider

from creditmemo.core.exceptions import LLMError
from creditmemo.generation_logic import workflow_orchestrator
from creditmemo.generation_logic.confirmation import FALLBACK_CONFIRMATION
from creditmemo.generation_logic.stream_orchestrator import _create_stream_event
from creditmemo.generation_logic.stream_orchestrator import _stream_workflow_logic
from creditmemo.models.memo_models import MemoData
from creditmemo.models.workflow_models import Attachment

ACME_REQUEST = "Analyze Acme Corp for a $250M senior secured term loan"


async def _lines(gen):
    return [json.loads(line) async for line in gen]


@pytest.fixture
def use_provider(monkeypatch):
    def _use(provider):
        monkeypatch.setattr(workflow_orchestrator, "get_provider", lambda name, backend_config=None: provider)
        return provider

    return _use


def test_create_stream_event_omits_missing_keys():
    line = _create_stream_event("finished", message="done")
    assert line.endswith("\n")
    assert json.loads(line) == {"type": "finished", "message": "done"}

    line = _create_stream_event("workflow_event", event={"id": "e1"}, partial_data={"title": "T"})
    assert json.loads(line) == {"type": "workflow_event", "event": {"id": "e1"}, "partialData": {"title": "T"}}


@pytest.mark.asyncio
async def test_successful_stream(use_provider, phase_outputs):
    use_provider(StubProvider(phase_outputs + ["Six agents completed the Acme Corp memorandum."]))

    lines = await _lines(_stream_workflow_logic(ACME_REQUEST))

    assert [line["type"] for line in lines] == ["workflow_event"] * 12 + ["confirmation", "data", "finished"]
    first = lines[0]
    assert first["event"]["agent"] == "DataCollector"
    assert first["event"]["status"] == "active"
    assert first["event"]["phase"] == "Data Collection"
    assert "partialData" not in first
    assert lines[1]["partialData"]["companyOverview"].startswith("Acme Corp")
    assert lines[12]["message"] == "Six agents completed the Acme Corp memorandum."
    document = lines[13]["payload"]
    assert document["termSheet"]["borrower"] == "Acme Corp"
    assert document["title"] == "Investment Memo: Acme Corp"
    assert MemoData.model_validate(document).scenario("Base Case").irr == 12.5


@pytest.mark.asyncio
async def test_confirmation_failure_falls_back(use_provider, phase_outputs):
    use_provider(StubProvider(phase_outputs + [LLMError("quota", provider="stub", status_code=429)]))

    lines = await _lines(_stream_workflow_logic(ACME_REQUEST))

    assert lines[12] == {"type": "confirmation", "message": FALLBACK_CONFIRMATION}
    assert lines[-1]["type"] == "finished"


@pytest.mark.asyncio
async def test_failed_run_streams_failed_event_then_error(use_provider, phase_outputs):
    use_provider(StubProvider([phase_outputs[0], "not json at all"]))

    lines = await _lines(_stream_workflow_logic(ACME_REQUEST, provider_name="claude"))

    assert [line["type"] for line in lines] == ["workflow_event"] * 4 + ["error"]
    failed = lines[3]["event"]
    assert failed["agent"] == "Orchestrator"
    assert failed["status"] == "failed"
    assert failed["phase"] == "Financial Modeling"
    error = lines[-1]
    assert error["message"] == "I encountered a critical error in the claude agent workflow."
    assert error["payload"]["companyOverview"].startswith("Acme Corp")
    assert error["payload"]["financialModel"]["sheets"] == []


@pytest.mark.asyncio
async def test_unknown_provider_streams_error_with_current_document():
    current = MemoData.model_validate({"title": "Existing memo"})

    lines = await _lines(_stream_workflow_logic(ACME_REQUEST, current_document=current, provider_name="openai"))

    assert len(lines) == 1
    assert lines[0]["type"] == "error"
    assert lines[0]["message"] == "I encountered a critical error in the openai agent workflow."
    assert lines[0]["payload"]["title"] == "Existing memo"


@pytest.mark.asyncio
async def test_invalid_attachment_streams_error(use_provider, stub_provider):
    use_provider(stub_provider)
    bad = Attachment(name="broken.pdf", mime_type="application/pdf", data="***not base64***")

    lines = await _lines(_stream_workflow_logic(ACME_REQUEST, attachments=[bad]))

    assert [line["type"] for line in lines] == ["error"]
    assert stub_provider.requests == []
