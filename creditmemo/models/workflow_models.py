from __future__ import annotations

import time
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel

from creditmemo.models.memo_models import MemoPatch


class EventStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentType(str, Enum):
    ORCHESTRATOR = "Orchestrator"
    DATA_COLLECTOR = "DataCollector"
    FINANCIAL_MODELER = "FinancialModeler"
    RISK_ANALYST = "RiskAnalyst"
    STRUCTURING_EXPERT = "StructuringExpert"
    COVENANT_DESIGNER = "CovenantDesigner"
    WRITER = "Writer"


class PhaseName(str, Enum):
    DATA_COLLECTION = "Data Collection"
    FINANCIAL_MODELING = "Financial Modeling"
    RISK_ASSESSMENT = "Risk Assessment"
    DEAL_STRUCTURING = "Deal Structuring"
    COVENANT_DESIGN = "Covenant Design"
    WRITING = "Writing"


class ProviderName(str, Enum):
    GEMINI = "gemini"
    CLAUDE = "claude"


class WorkflowEvent(BaseModel):
    """Immutable audit record; one per phase status transition."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    agent: AgentType
    status: EventStatus
    message: str
    timestamp: float = Field(default_factory=time.time)
    # Phase the event belongs to; set on failure events emitted by the orchestrator too
    phase: PhaseName | None = None
    partial_data: MemoPatch | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WorkflowUpdate(BaseModel):
    """One element of a run's output stream."""

    model_config = ConfigDict(frozen=True)

    event: WorkflowEvent
    partial_data: MemoPatch | None = None


class Attachment(BaseModel):
    """Attachment as produced by file ingestion: base64 payload plus its MIME type."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    mime_type: str
    data: str


class BackendConfig(BaseModel):
    """Per-run overrides of the provider defaults."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    model: str | None = None
    reasoning_allowed: bool = True
    tools_allowed: bool = True
    thinking_budget_tokens: int | None = None
