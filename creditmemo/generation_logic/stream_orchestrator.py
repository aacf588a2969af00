import json
import logging
from collections.abc import AsyncGenerator
from collections.abc import Sequence
from typing import Any
from uuid import uuid4

from creditmemo.core.config import settings
from creditmemo.core.exceptions import AttachmentError
from creditmemo.core.exceptions import ConfigurationError
from creditmemo.core.exceptions import JSONParsingError
from creditmemo.core.exceptions import LLMError
from creditmemo.core.exceptions import PipelineError
from creditmemo.generation_logic.confirmation import confirm_run
from creditmemo.generation_logic.workflow_channel import WorkflowChannel
from creditmemo.generation_logic.workflow_orchestrator import WorkflowRun
from creditmemo.generation_logic.workflow_orchestrator import seed_document
from creditmemo.generation_logic.workflow_orchestrator import start_workflow
from creditmemo.models.memo_models import MemoData
from creditmemo.models.workflow_models import Attachment
from creditmemo.models.workflow_models import BackendConfig
from creditmemo.models.workflow_models import ProviderName

__all__ = [
    "_create_stream_event",
    "_stream_workflow_logic",
    "critical_error_message",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# NDJSON event helper
# ---------------------------------------------------------------------------


def _create_stream_event(
    event_type: str,
    message: str | None = None,
    payload: dict[str, Any] | None = None,
    event: dict[str, Any] | None = None,
    partial_data: dict[str, Any] | None = None,
) -> str:
    """Serialize a stream event dict to an NDJSON line."""
    line: dict[str, Any] = {"type": event_type}
    if message is not None:
        line["message"] = message
    if payload is not None:
        line["payload"] = payload
    if event is not None:
        line["event"] = event
    if partial_data is not None:
        line["partialData"] = partial_data
    return json.dumps(line, ensure_ascii=False) + "\n"


def _dump_document(document: MemoData) -> dict[str, Any]:
    return document.model_dump(mode="json", by_alias=True)


def critical_error_message(provider: str) -> str:
    return f"I encountered a critical error in the {provider} agent workflow."


# ---------------------------------------------------------------------------
# Main streaming workflow orchestrator
# ---------------------------------------------------------------------------


async def _stream_workflow_logic(
    request_text: str,
    attachments: Sequence[Attachment] = (),
    current_document: MemoData | None = None,
    provider_name: ProviderName | str | None = None,
    backend_config: BackendConfig | None = None,
) -> AsyncGenerator[str, None]:
    """Run the six-phase workflow, yielding NDJSON events that clients can
    consume as a stream.

    Every workflow update becomes a ``workflow_event`` line. A successful run
    ends with ``confirmation``, ``data`` (the final document) and ``finished``.
    A failed run ends with the ``failed`` workflow event followed by one
    ``error`` line whose payload is the last-good document.
    """
    request_id = str(uuid4())
    provider_label = str(getattr(provider_name, "value", provider_name) or settings.default_provider)
    logger.info(
        "[%s] Initiating streaming workflow: provider=%s attachments=%d",
        request_id,
        provider_label,
        len(attachments),
    )

    run: WorkflowRun | None = None
    try:
        run = start_workflow(request_text, attachments, current_document, provider_name, backend_config)
        logger.info("[%s] Workflow run %s prepared", request_id, run.run_id)

        async with WorkflowChannel(run) as channel:
            async for update in channel:
                partial = (
                    update.partial_data.model_dump(mode="json", by_alias=True, exclude_none=True)
                    if update.partial_data is not None
                    else None
                )
                yield _create_stream_event(
                    "workflow_event",
                    event=update.event.to_wire(),
                    partial_data=partial,
                )

        confirmation = await confirm_run(run.provider, run.request_text, run.run_id)
        yield _create_stream_event("confirmation", message=confirmation)
        yield _create_stream_event("data", payload=_dump_document(run.document))
        yield _create_stream_event("finished", message="Stream completed successfully.")

    except (ConfigurationError, AttachmentError) as e:
        logger.error("[%s] Workflow could not start: %s", request_id, str(e), exc_info=False)
        yield _create_stream_event(
            "error",
            message=critical_error_message(provider_label),
            payload=_dump_document(seed_document(current_document)),
        )
    except (LLMError, JSONParsingError, PipelineError) as e:
        logger.error("[%s] %s during stream: %s", request_id, type(e).__name__, str(e), exc_info=False)
        document = run.document if run is not None else seed_document(current_document)
        yield _create_stream_event(
            "error",
            message=critical_error_message(provider_label),
            payload=_dump_document(document),
        )
    except Exception as e:  # General catch-all MUST be last
        logger.exception("[%s] Unexpected error during stream: %s", request_id, str(e))
        document = run.document if run is not None else seed_document(current_document)
        yield _create_stream_event(
            "error",
            message=critical_error_message(provider_label),
            payload=_dump_document(document),
        )
    finally:
        logger.info("[%s] Stream workflow logic finished.", request_id)
