"""Sequential six-phase memorandum workflow.

A ``WorkflowRun`` owns one private document accumulator. Phases run strictly
in order because each phase's context is rendered from the document merged
through the previous phase. Every phase emits one ``active`` event and one
terminal event; a failure emits a single ``failed`` event tagged with the
``Orchestrator`` agent and re-raises the error, leaving ``run.document`` at
its last merged state.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from collections.abc import Sequence
from enum import Enum
from typing import Any
from uuid import uuid4

from tenacity import AsyncRetrying
from tenacity import before_sleep_log
from tenacity import retry_if_exception
from tenacity import stop_after_attempt
from tenacity import wait_exponential

from creditmemo.core.config import settings
from creditmemo.core.exceptions import LLMError
from creditmemo.core.exceptions import PhaseTimeoutError
from creditmemo.core.exceptions import PipelineError
from creditmemo.generation_logic.file_processing import decode_attachments
from creditmemo.generation_logic.phases import PHASES
from creditmemo.generation_logic.phases import PhaseDefinition
from creditmemo.models.memo_models import MemoData
from creditmemo.models.memo_models import MemoPatch
from creditmemo.models.workflow_models import AgentType
from creditmemo.models.workflow_models import Attachment
from creditmemo.models.workflow_models import BackendConfig
from creditmemo.models.workflow_models import EventStatus
from creditmemo.models.workflow_models import PhaseName
from creditmemo.models.workflow_models import ProviderName
from creditmemo.models.workflow_models import WorkflowEvent
from creditmemo.models.workflow_models import WorkflowUpdate
from creditmemo.services.merge import merge
from creditmemo.services.merge import merge_record
from creditmemo.services.merge import project_patch
from creditmemo.services.merge import restrict_patch
from creditmemo.services.output_extractor import extract_json
from creditmemo.services.output_extractor import extract_payload
from creditmemo.services.output_extractor import patch_from_data
from creditmemo.services.prompts import get_phase_instructions
from creditmemo.services.prompts import render_template
from creditmemo.services.providers.base import BackendProvider
from creditmemo.services.providers.base import EncodedAttachment
from creditmemo.services.providers.base import GenerationRequest
from creditmemo.services.providers.base import RawOutput
from creditmemo.services.providers.registry import get_provider

__all__ = [
    "RunState",
    "WorkflowOrchestrator",
    "WorkflowRun",
    "run_workflow",
    "start_workflow",
]

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
RETRY_WAIT = wait_exponential(multiplier=1, min=2, max=10)

# Backend calls still running after their run was cancelled
_IN_FLIGHT: set[asyncio.Future] = set()


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _discard_result(call: asyncio.Future) -> None:
    _IN_FLIGHT.discard(call)
    if not call.cancelled() and call.exception() is not None:
        logger.info("Discarded backend call ended with: %s", call.exception())


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, PhaseTimeoutError):
        return False
    return isinstance(exc, LLMError) and exc.status_code in RETRYABLE_STATUS


def seed_document(current_document: MemoData | None) -> MemoData:
    """Fresh document carrying every non-empty value of a previously accumulated one."""
    return merge_record(MemoData(), current_document)


class WorkflowRun:
    """State of a single workflow run."""

    def __init__(
        self,
        provider: BackendProvider,
        request_text: str,
        attachments: Sequence[EncodedAttachment] = (),
        current_document: MemoData | None = None,
        backend_config: BackendConfig | None = None,
        run_id: str | None = None,
    ):
        self.run_id = run_id or str(uuid4())
        self.provider = provider
        self.request_text = request_text
        self.attachments = tuple(attachments)
        self.backend_config = backend_config or BackendConfig()
        self.document = seed_document(current_document)
        self.events: list[WorkflowEvent] = []
        self.state = RunState.IDLE
        self.current_phase: PhaseName | None = None
        self.error: BaseException | None = None
        self._research_notes = "{}"

    # ------------------------------------------------------------------
    # Event helpers
    # ------------------------------------------------------------------

    def _emit(
        self,
        agent: AgentType,
        status: EventStatus,
        message: str,
        phase: PhaseName,
        partial_data: MemoPatch | None = None,
    ) -> WorkflowUpdate:
        event = WorkflowEvent(
            id=f"{self.run_id}-{agent.value}-{len(self.events)}",
            agent=agent,
            status=status,
            message=message,
            phase=phase,
            partial_data=partial_data,
        )
        self.events.append(event)
        return WorkflowUpdate(event=event, partial_data=partial_data)

    # ------------------------------------------------------------------
    # Phase execution
    # ------------------------------------------------------------------

    def build_context(self, phase: PhaseDefinition) -> str:
        return render_template(
            phase.template,
            {
                "request_text": self.request_text,
                "memo": self.document,
                "research_notes": self._research_notes,
                "instructions": get_phase_instructions(phase.name),
            },
        )

    def build_request(self, phase: PhaseDefinition) -> GenerationRequest:
        return GenerationRequest(
            system=phase.role,
            user_content=self.build_context(phase),
            attachments=self.attachments if phase.uses_attachments else (),
            reasoning_enabled=phase.reasoning and self.backend_config.reasoning_allowed,
            temperature=phase.temperature,
            token_budget=phase.token_budget,
            tools=phase.tools if self.backend_config.tools_allowed else frozenset(),
            request_id=self.run_id,
        )

    async def _bounded_call(self, request: GenerationRequest, phase: PhaseDefinition) -> RawOutput:
        timeout = settings.phase_timeout_seconds
        if timeout is None:
            return await self.provider.generate(request)
        try:
            return await asyncio.wait_for(self.provider.generate(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("[%s] %s phase timed out after %.1fs", self.run_id, phase.name.value, timeout)
            raise PhaseTimeoutError(
                f"{phase.name.value} phase timed out after {timeout:.0f}s",
                provider=self.provider.name,
            ) from None

    async def _call_once(self, request: GenerationRequest, phase: PhaseDefinition) -> RawOutput:
        """Issue one backend call. Cancelling the run does not abort a call already in flight."""
        call = asyncio.ensure_future(self._bounded_call(request, phase))
        try:
            return await asyncio.shield(call)
        except asyncio.CancelledError:
            if not call.done():
                logger.info(
                    "[%s] %s call left to finish after cancellation, result will be discarded",
                    self.run_id,
                    phase.name.value,
                )
                _IN_FLIGHT.add(call)
                call.add_done_callback(_discard_result)
            raise

    async def _call_backend(self, request: GenerationRequest, phase: PhaseDefinition) -> RawOutput:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(settings.phase_max_attempts),
            wait=RETRY_WAIT,
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._call_once(request, phase)
        raise LLMError("Backend call produced no result", provider=self.provider.name)  # pragma: no cover

    async def _execute_phase(self, phase: PhaseDefinition) -> MemoPatch:
        request = self.build_request(phase)
        raw = await self._call_backend(request, phase)

        text = extract_payload(raw, self.run_id)
        data: Any = extract_json(text, self.run_id)
        patch = patch_from_data(data, self.run_id)
        if phase.name is PhaseName.DATA_COLLECTION:
            self._research_notes = json.dumps(data, ensure_ascii=False)

        patch = restrict_patch(patch, phase.owned)
        if phase.finalize is not None:
            patch = phase.finalize(patch, self.document)
        return patch

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def stream(self) -> AsyncGenerator[WorkflowUpdate, None]:
        """Run all phases, yielding one update per event."""
        if self.state is not RunState.IDLE:
            raise PipelineError("A workflow run can only be streamed once.")
        self.state = RunState.RUNNING
        logger.info(
            "[%s] Starting workflow with provider=%s model=%s attachments=%d",
            self.run_id,
            self.provider.name,
            self.provider.model,
            len(self.attachments),
        )

        try:
            for phase in PHASES:
                self.current_phase = phase.name
                yield self._emit(phase.agent, EventStatus.ACTIVE, phase.active_message, phase.name)

                try:
                    patch = await self._execute_phase(phase)
                except asyncio.CancelledError:
                    logger.info("[%s] Workflow cancelled during %s phase", self.run_id, phase.name.value)
                    self.state = RunState.CANCELLED
                    raise
                except Exception as e:
                    self.state = RunState.FAILED
                    self.error = e
                    if isinstance(e, PipelineError):
                        logger.error("[%s] %s phase failed: %s", self.run_id, phase.name.value, str(e), exc_info=False)
                    else:
                        logger.exception("[%s] Unexpected error in %s phase", self.run_id, phase.name.value)
                    yield self._emit(
                        AgentType.ORCHESTRATOR,
                        EventStatus.FAILED,
                        f"Workflow interrupted: {str(e)}",
                        phase.name,
                    )
                    raise

                self.document = merge(self.document, patch)
                partial = project_patch(self.document, phase.owned)
                logger.info("[%s] %s phase merged", self.run_id, phase.name.value)
                yield self._emit(phase.agent, EventStatus.COMPLETED, phase.completed_message, phase.name, partial)
        except GeneratorExit:
            if self.state is RunState.RUNNING:
                logger.info("[%s] Workflow stream closed by caller", self.run_id)
                self.state = RunState.CANCELLED
            raise

        self.state = RunState.DONE
        self.current_phase = None
        logger.info("[%s] Workflow completed: %d events", self.run_id, len(self.events))


class WorkflowOrchestrator:
    """Creates workflow runs against one selected backend."""

    def __init__(self, provider: BackendProvider, backend_config: BackendConfig | None = None):
        self.provider = provider
        self.backend_config = backend_config or BackendConfig()

    def start(
        self,
        request_text: str,
        attachments: Sequence[Attachment] = (),
        current_document: MemoData | None = None,
        run_id: str | None = None,
    ) -> WorkflowRun:
        if not request_text or not request_text.strip():
            raise PipelineError("Input validation failed: request text is missing.")
        run_id = run_id or str(uuid4())
        decoded = decode_attachments(attachments, run_id)
        return WorkflowRun(
            provider=self.provider,
            request_text=request_text.strip(),
            attachments=decoded,
            current_document=current_document,
            backend_config=self.backend_config,
            run_id=run_id,
        )

    async def run(
        self,
        request_text: str,
        attachments: Sequence[Attachment] = (),
        current_document: MemoData | None = None,
    ) -> AsyncGenerator[WorkflowUpdate, None]:
        run = self.start(request_text, attachments, current_document)
        async for update in run.stream():
            yield update


def start_workflow(
    request_text: str,
    attachments: Sequence[Attachment] = (),
    current_document: MemoData | None = None,
    provider_name: ProviderName | str | None = None,
    backend_config: BackendConfig | None = None,
) -> WorkflowRun:
    """Resolve the backend by name and prepare a run."""
    provider = get_provider(provider_name, backend_config)
    return WorkflowOrchestrator(provider, backend_config).start(request_text, attachments, current_document)


async def run_workflow(
    request_text: str,
    attachments: Sequence[Attachment] = (),
    current_document: MemoData | None = None,
    provider_name: ProviderName | str | None = None,
    backend_config: BackendConfig | None = None,
) -> AsyncGenerator[WorkflowUpdate, None]:
    run = start_workflow(request_text, attachments, current_document, provider_name, backend_config)
    async for update in run.stream():
        yield update
