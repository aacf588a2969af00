import logging
from typing import Any

import anthropic
import httpx

from creditmemo.core.config import settings
from creditmemo.core.exceptions import ConfigurationError
from creditmemo.core.exceptions import LLMError
from creditmemo.services.providers.base import AttachmentKind
from creditmemo.services.providers.base import BackendProvider
from creditmemo.services.providers.base import ContentSegment
from creditmemo.services.providers.base import GenerationRequest
from creditmemo.services.providers.base import RawOutput
from creditmemo.services.providers.base import SegmentKind
from creditmemo.services.providers.base import ToolCapability

logger = logging.getLogger(__name__)

# Skills run inside the code-execution container, which needs both betas
SKILL_BETAS = ["code-execution-2025-08-25", "skills-2025-10-02"]
CODE_EXECUTION_TOOL = {"type": "code_execution_20250825", "name": "code_execution"}

SKILL_IDS = {
    ToolCapability.PDF_ANALYSIS: "pdf",
    ToolCapability.SPREADSHEET: "xlsx",
    ToolCapability.PRESENTATION: "pptx",
    ToolCapability.DOCUMENT: "docx",
}

_BLOCK_KINDS = {
    "text": SegmentKind.TEXT,
    "thinking": SegmentKind.REASONING,
    "redacted_thinking": SegmentKind.REASONING,
    "tool_use": SegmentKind.TOOL_USE,
    "server_tool_use": SegmentKind.TOOL_USE,
}


def _build_client() -> anthropic.AsyncAnthropic:
    if not settings.anthropic_api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY is not configured.")
    return anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=httpx.Timeout(settings.LLM_CONNECT_TIMEOUT, read=settings.LLM_READ_TIMEOUT),
        max_retries=0,
    )


def _to_segment(block: Any) -> ContentSegment:
    block_type = getattr(block, "type", "")
    kind = _BLOCK_KINDS.get(block_type)
    if kind is None:
        kind = SegmentKind.TOOL_RESULT if block_type.endswith("tool_result") else SegmentKind.OTHER
    if kind is SegmentKind.TEXT:
        return ContentSegment(kind, getattr(block, "text", "") or "")
    if block_type == "thinking":
        return ContentSegment(kind, getattr(block, "thinking", "") or "")
    return ContentSegment(kind)


class ClaudeProvider(BackendProvider):
    """Anthropic backend: extended thinking and document/spreadsheet skills per call."""

    name = "claude"

    def __init__(
        self,
        model: str | None = None,
        thinking_budget_tokens: int | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        super().__init__(model or settings.claude_model, thinking_budget_tokens)
        self._client = client or _build_client()

    def build_content(self, request: GenerationRequest) -> list[dict[str, Any]]:
        """PDFs become document blocks, images become image blocks, anything else is referenced inline."""
        content: list[dict[str, Any]] = []
        text_context = request.user_content
        for att in request.attachments:
            if att.kind is AttachmentKind.DOCUMENT:
                content.append(
                    {
                        "type": "document",
                        "source": {"type": "base64", "media_type": "application/pdf", "data": att.as_base64()},
                    }
                )
                text_context += f"\n\n[Attached PDF: {att.name}]"
            elif att.kind is AttachmentKind.IMAGE:
                content.append(
                    {
                        "type": "image",
                        "source": {"type": "base64", "media_type": att.mime_type, "data": att.as_base64()},
                    }
                )
                text_context += f"\n\n[Attached Image: {att.name}]"
            else:
                text_context += "\n\n" + att.text_reference()
        content.append({"type": "text", "text": text_context})
        return content

    def build_params(self, request: GenerationRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.token_budget,
            "system": request.system,
            "messages": [{"role": "user", "content": self.build_content(request)}],
        }

        skills = [
            {"type": "anthropic", "skill_id": SKILL_IDS[tool], "version": "latest"}
            for tool in sorted(request.tools, key=lambda t: t.value)
            if tool in SKILL_IDS
        ]
        if skills:
            params["betas"] = SKILL_BETAS
            params["container"] = {"skills": skills}
            params["tools"] = [CODE_EXECUTION_TOOL]

        if request.reasoning_enabled:
            # Sampling temperature cannot be combined with extended thinking
            params["thinking"] = {"type": "enabled", "budget_tokens": self.thinking_budget_tokens}
            params["max_tokens"] = max(request.token_budget, self.thinking_budget_tokens + 1024)
        else:
            params["temperature"] = request.temperature
        return params

    async def generate(self, request: GenerationRequest) -> RawOutput:
        request_id = request.request_id
        params = self.build_params(request)
        logger.info(
            "[%s] Claude call: model=%s thinking=%s skills=%d attachments=%d",
            request_id,
            self.model,
            request.reasoning_enabled,
            len(params.get("container", {}).get("skills", [])),
            len(request.attachments),
        )
        try:
            if "betas" in params:
                response = await self._client.beta.messages.create(**params)
            else:
                response = await self._client.messages.create(**params)
        except anthropic.APIStatusError as e:
            logger.error("[%s] Claude API error (status %s): %s", request_id, e.status_code, str(e), exc_info=False)
            raise LLMError(f"Claude API error: {str(e)}", provider=self.name, status_code=e.status_code) from e
        except anthropic.APIError as e:
            logger.error("[%s] Claude transport error: %s", request_id, str(e), exc_info=False)
            raise LLMError(f"Claude transport error: {str(e)}", provider=self.name) from e

        segments = tuple(_to_segment(block) for block in (getattr(response, "content", None) or []))
        logger.debug("[%s] Claude response: %d segments, stop_reason=%s", request_id, len(segments), getattr(response, "stop_reason", None))
        return RawOutput(
            provider=self.name,
            model=self.model,
            segments=segments,
            stop_reason=getattr(response, "stop_reason", None),
        )
