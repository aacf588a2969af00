import logging
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

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


def _build_client() -> genai.Client:
    if not settings.gemini_api_key:
        raise ConfigurationError("GEMINI_API_KEY is not configured.")
    timeout_ms = int((settings.LLM_CONNECT_TIMEOUT + settings.LLM_READ_TIMEOUT) * 1000)
    return genai.Client(api_key=settings.gemini_api_key, http_options=types.HttpOptions(timeout=timeout_ms))


def _to_segments(response: Any) -> tuple[ContentSegment, ...]:
    """Flatten the first candidate's parts into typed segments.

    Gemini may split one answer over several text parts; they are joined into a
    single text segment placed where the first one appeared.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates or not getattr(candidates[0], "content", None):
        return ()

    segments: list[ContentSegment] = []
    text_parts: list[str] = []
    text_index: int | None = None
    for part in candidates[0].content.parts or []:
        if getattr(part, "thought", False):
            segments.append(ContentSegment(SegmentKind.REASONING, part.text or ""))
        elif getattr(part, "function_call", None) or getattr(part, "executable_code", None):
            segments.append(ContentSegment(SegmentKind.TOOL_USE))
        elif getattr(part, "code_execution_result", None) or getattr(part, "function_response", None):
            segments.append(ContentSegment(SegmentKind.TOOL_RESULT))
        elif getattr(part, "text", None) is not None:
            if text_index is None:
                text_index = len(segments)
            text_parts.append(part.text)

    if text_index is not None:
        segments.insert(text_index, ContentSegment(SegmentKind.TEXT, "".join(text_parts)))
    return tuple(segments)


class GeminiProvider(BackendProvider):
    """Google Gemini backend: search grounding and strict JSON response formatting."""

    name = "gemini"

    def __init__(
        self,
        model: str | None = None,
        thinking_budget_tokens: int | None = None,
        client: genai.Client | None = None,
    ):
        super().__init__(model or settings.gemini_model, thinking_budget_tokens)
        self._client = client or _build_client()

    def build_parts(self, request: GenerationRequest) -> list[types.Part]:
        parts: list[types.Part] = []
        text_context = request.user_content
        for att in request.attachments:
            if att.kind in (AttachmentKind.DOCUMENT, AttachmentKind.IMAGE):
                parts.append(types.Part.from_bytes(data=att.payload, mime_type=att.mime_type))
            else:
                text_context += "\n\n" + att.text_reference()
        parts.append(types.Part.from_text(text=text_context))
        return parts

    def build_config(self, request: GenerationRequest) -> types.GenerateContentConfig:
        config_kwargs: dict[str, Any] = {
            "system_instruction": request.system,
            "temperature": request.temperature,
            "max_output_tokens": request.token_budget,
        }
        if ToolCapability.SEARCH_GROUNDING in request.tools:
            # The API rejects a JSON response MIME type together with search grounding
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        elif request.json_output:
            config_kwargs["response_mime_type"] = "application/json"

        if request.reasoning_enabled:
            config_kwargs["thinking_config"] = types.ThinkingConfig(thinking_budget=self.thinking_budget_tokens)
        elif "flash" in self.model:
            config_kwargs["thinking_config"] = types.ThinkingConfig(thinking_budget=0)
        return types.GenerateContentConfig(**config_kwargs)

    async def generate(self, request: GenerationRequest) -> RawOutput:
        request_id = request.request_id
        logger.info(
            "[%s] Gemini call: model=%s thinking=%s tools=%s attachments=%d",
            request_id,
            self.model,
            request.reasoning_enabled,
            sorted(t.value for t in request.tools),
            len(request.attachments),
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=[types.Content(role="user", parts=self.build_parts(request))],
                config=self.build_config(request),
            )
        except genai_errors.APIError as e:
            status = getattr(e, "code", None)
            logger.error("[%s] Gemini API error (status %s): %s", request_id, status, str(e), exc_info=False)
            raise LLMError(f"Gemini API error: {str(e)}", provider=self.name, status_code=status) from e
        except httpx.HTTPError as e:
            logger.error("[%s] Gemini transport error: %s", request_id, str(e), exc_info=False)
            raise LLMError(f"Gemini transport error: {str(e)}", provider=self.name) from e

        segments = _to_segments(response)
        logger.debug("[%s] Gemini response: %d segments", request_id, len(segments))
        candidates = getattr(response, "candidates", None) or []
        finish_reason = getattr(candidates[0], "finish_reason", None) if candidates else None
        return RawOutput(
            provider=self.name,
            model=self.model,
            segments=segments,
            stop_reason=str(finish_reason) if finish_reason is not None else None,
        )
