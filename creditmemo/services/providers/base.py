"""Backend provider contract.

A provider performs exactly one network round trip per ``generate`` call and
returns the response as an ordered list of typed segments. Providers never
retry; the orchestrator owns the retry policy.
"""

from __future__ import annotations

import base64
from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from uuid import uuid4

from creditmemo.core.config import settings


class ToolCapability(str, Enum):
    """Auxiliary tools a phase may attach to a call. Backends ignore what they do not support."""

    SEARCH_GROUNDING = "search_grounding"
    PDF_ANALYSIS = "pdf"
    SPREADSHEET = "xlsx"
    PRESENTATION = "pptx"
    DOCUMENT = "docx"


class AttachmentKind(str, Enum):
    DOCUMENT = "document"
    IMAGE = "image"
    OTHER = "other"

    @classmethod
    def from_mime_type(cls, mime_type: str) -> AttachmentKind:
        if mime_type == "application/pdf":
            return cls.DOCUMENT
        if mime_type.startswith("image/"):
            return cls.IMAGE
        return cls.OTHER


@dataclass(frozen=True)
class EncodedAttachment:
    name: str
    mime_type: str
    payload: bytes

    @property
    def kind(self) -> AttachmentKind:
        return AttachmentKind.from_mime_type(self.mime_type)

    def as_base64(self) -> str:
        return base64.standard_b64encode(self.payload).decode("ascii")

    def text_reference(self) -> str:
        """Inline stand-in for attachments that are not given to the model as binary."""
        excerpt = self.as_base64()[: settings.attachment_excerpt_chars]
        return f"[Attachment: {self.name} ({self.mime_type})]\n(Base64 Data: {excerpt}...)"


@dataclass(frozen=True)
class GenerationRequest:
    system: str
    user_content: str
    attachments: tuple[EncodedAttachment, ...] = ()
    reasoning_enabled: bool = False
    temperature: float = 0.0
    token_budget: int = 8000
    tools: frozenset[ToolCapability] = field(default_factory=frozenset)
    json_output: bool = True
    # Run id used as the log prefix; standalone calls get their own
    request_id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        if not self.system.strip() or not self.user_content.strip():
            raise ValueError("GenerationRequest requires non-empty system and user content")


class SegmentKind(str, Enum):
    TEXT = "text"
    REASONING = "reasoning"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    OTHER = "other"


@dataclass(frozen=True)
class ContentSegment:
    kind: SegmentKind
    text: str = ""


@dataclass(frozen=True)
class RawOutput:
    provider: str
    model: str
    segments: tuple[ContentSegment, ...] = ()
    stop_reason: str | None = None


class BackendProvider(ABC):
    """Interchangeable generation backend."""

    name: str = "backend"

    def __init__(self, model: str, thinking_budget_tokens: int | None = None):
        self.model = model
        self.thinking_budget_tokens = thinking_budget_tokens or settings.thinking_budget_tokens

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> RawOutput:
        """Perform one backend call. Raises ``LLMError`` on transport failure."""
