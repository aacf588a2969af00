import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field as PydanticField
from pydantic.alias_generators import to_camel

from creditmemo.core.config import settings
from creditmemo.core.security import Depends
from creditmemo.core.security import verify_api_key

# Generation-logic helpers -------------------------------------------------
from creditmemo.generation_logic.stream_orchestrator import _stream_workflow_logic
from creditmemo.models.memo_models import FinancialModel
from creditmemo.models.memo_models import MemoData
from creditmemo.models.memo_models import RowFormat
from creditmemo.models.workflow_models import Attachment
from creditmemo.models.workflow_models import BackendConfig
from creditmemo.models.workflow_models import ProviderName
from creditmemo.services.model_checks import run_model_health_check
from creditmemo.services.model_checks import validate_cell_input
from creditmemo.services.model_checks import validation_status_from_checks
from creditmemo.services.providers.registry import available_models

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class WorkflowPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    request: str = PydanticField(..., min_length=1, description="The analyst's free-text request.")
    attachments: list[Attachment] = PydanticField(default_factory=list, description="Base64-encoded supporting files.")
    current_document: MemoData | None = PydanticField(default=None, description="Memorandum accumulated so far.")
    provider: ProviderName | None = PydanticField(default=None, description="Backend to run the workflow on.")
    backend_config: BackendConfig | None = PydanticField(default=None, description="Per-run backend overrides.")


class CellInputPayload(BaseModel):
    value: str | float | None = None
    format: RowFormat = RowFormat.NUMBER


@router.post("/workflow", dependencies=[Depends(verify_api_key)])
async def workflow(payload: WorkflowPayload) -> StreamingResponse:
    """
    Runs the six-phase memorandum workflow on the selected backend.
    Streams back NDJSON events representing the workflow progress.

    Potential Stream Events:
    - `workflow_event`: One phase status transition, with the merged fields of that phase.
    - `confirmation`: Short summary of the completed run.
    - `data`: The final memorandum.
    - `finished`: Signals the end of a successful stream.
    - `error`: The run failed; the payload carries the last-good memorandum.
    """
    logger.info(
        "Workflow request received: provider=%s attachments=%d",
        payload.provider.value if payload.provider else settings.default_provider,
        len(payload.attachments),
    )
    return StreamingResponse(
        _stream_workflow_logic(
            request_text=payload.request,
            attachments=payload.attachments,
            current_document=payload.current_document,
            provider_name=payload.provider,
            backend_config=payload.backend_config,
        ),
        media_type="application/x-ndjson",
    )


@router.post("/financial-model/checks", dependencies=[Depends(verify_api_key)])
async def financial_model_checks(model: FinancialModel) -> dict[str, Any]:
    """Runs the balance, cash-tie and leverage integrity checks on a financial model."""
    checks = run_model_health_check(model)
    return {
        "checks": [check.model_dump(by_alias=True) for check in checks],
        "validationStatus": validation_status_from_checks(checks).model_dump(by_alias=True),
    }


@router.post("/financial-model/validate-cell", dependencies=[Depends(verify_api_key)])
async def financial_model_validate_cell(payload: CellInputPayload) -> dict[str, Any]:
    return validate_cell_input(payload.value, payload.format).model_dump(by_alias=True, exclude_none=True)


@router.get("/providers")
async def providers() -> dict[str, Any]:
    return {"default": settings.default_provider, "models": available_models()}
