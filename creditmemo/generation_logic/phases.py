"""The six ordered workflow phases.

A phase is data: which agent runs it, the context template it renders, the
backend configuration it asks for, and the memorandum fields it owns. The
orchestrator runs every phase through the same code path.
"""

from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from datetime import date

from creditmemo.core.config import settings
from creditmemo.models.memo_models import MemoData
from creditmemo.models.memo_models import MemoPatch
from creditmemo.models.memo_models import MemoStatus
from creditmemo.models.workflow_models import AgentType
from creditmemo.models.workflow_models import PhaseName
from creditmemo.services.merge import FieldSelection
from creditmemo.services.merge import is_present
from creditmemo.services.providers.base import ToolCapability

STRUCTURING_TERMS = {
    "borrower",
    "facility_type",
    "amount",
    "tenor",
    "pricing",
    "base_rate",
    "spread",
    "pricing_grid",
    "default_rate",
    "fees",
    "amortization",
    "prepayments",
    "collateral",
    "guarantors",
}

COVENANT_TERMS = {
    "maintenance_covenants",
    "negative_covenants",
    "financial_covenants",
    "conditions_precedent",
    "reporting_requirements",
    "governing_law",
}


def _finalize_writing(patch: MemoPatch, document: MemoData) -> MemoPatch:
    """Title fallback, Draft status and today's date on the writer's patch."""
    updates: dict = {"status": MemoStatus.DRAFT, "last_updated": date.today().isoformat()}
    if not is_present(patch.title):
        borrower = document.term_sheet.borrower
        if patch.term_sheet is not None and is_present(patch.term_sheet.borrower):
            borrower = patch.term_sheet.borrower
        updates["title"] = f"Investment Memo: {borrower or 'Target Company'}"
    return MemoPatch.model_validate({**patch.model_dump(exclude_unset=True), **updates})


@dataclass(frozen=True)
class PhaseDefinition:
    name: PhaseName
    agent: AgentType
    template: str
    role: str
    active_message: str
    completed_message: str
    owned: FieldSelection
    reasoning: bool = False
    temperature: float = 0.0
    tools: frozenset[ToolCapability] = field(default_factory=frozenset)
    uses_attachments: bool = False
    finalize: Callable[[MemoPatch, MemoData], MemoPatch] | None = None

    @property
    def token_budget(self) -> int:
        return settings.reasoning_token_budget if self.reasoning else settings.default_token_budget


PHASES: tuple[PhaseDefinition, ...] = (
    PhaseDefinition(
        name=PhaseName.DATA_COLLECTION,
        agent=AgentType.DATA_COLLECTOR,
        template="data_collection.jinja2",
        role="You are a credit research analyst. Output strictly valid JSON.",
        active_message="Analyzing request and gathering filings and market intelligence...",
        completed_message="Entity data and market intelligence gathered.",
        owned={"company_overview": True, "market_analysis": True, "competitive_position": True},
        temperature=0.2,
        tools=frozenset({ToolCapability.SEARCH_GROUNDING, ToolCapability.PDF_ANALYSIS}),
        uses_attachments=True,
    ),
    PhaseDefinition(
        name=PhaseName.FINANCIAL_MODELING,
        agent=AgentType.FINANCIAL_MODELER,
        template="financial_modeling.jinja2",
        role="You are a financial modeling expert. You must output strictly valid JSON matching the FinancialModel schema.",
        active_message="Constructing 3-statement model and return scenarios...",
        completed_message="Financial model built with Base/Upside/Downside cases.",
        owned={
            "financial_model": True,
            "financial_analysis": True,
            "scenarios": True,
            "liquidation_waterfall": True,
        },
        reasoning=True,
        tools=frozenset({ToolCapability.SPREADSHEET}),
    ),
    PhaseDefinition(
        name=PhaseName.RISK_ASSESSMENT,
        agent=AgentType.RISK_ANALYST,
        template="risk_assessment.jinja2",
        role="You are a senior risk analyst. Output strictly valid JSON.",
        active_message="Identifying risks and calculating probability/impact...",
        completed_message="Risk matrix and mitigants defined.",
        owned={"risks": True},
        reasoning=True,
    ),
    PhaseDefinition(
        name=PhaseName.DEAL_STRUCTURING,
        agent=AgentType.STRUCTURING_EXPERT,
        template="deal_structuring.jinja2",
        role="You are a deal structuring expert. Output strictly valid JSON.",
        active_message="Structuring facility, pricing, and security package...",
        completed_message="Term sheet core terms and pricing set.",
        owned={"capital_structure": True, "term_sheet": STRUCTURING_TERMS},
        reasoning=True,
    ),
    PhaseDefinition(
        name=PhaseName.COVENANT_DESIGN,
        agent=AgentType.COVENANT_DESIGNER,
        template="covenant_design.jinja2",
        role="You are a covenant lawyer. Output strictly valid JSON.",
        active_message="Calibrating maintenance and negative covenants...",
        completed_message="Covenants calibrated with appropriate headroom.",
        owned={"term_sheet": COVENANT_TERMS},
        temperature=0.1,
    ),
    PhaseDefinition(
        name=PhaseName.WRITING,
        agent=AgentType.WRITER,
        template="writing.jinja2",
        role="You are a credit investment writer. Output strictly valid JSON.",
        active_message="Synthesizing final Investment Memorandum...",
        completed_message="Final Investment Memo assembled successfully.",
        owned={
            "title": True,
            "status": True,
            "last_updated": True,
            "recommendation": True,
            "executive_summary": True,
            "investment_thesis": True,
            "investment_highlights": True,
            "key_terms": True,
            "business_analysis": True,
            "downside_analysis": True,
            "term_sheet": True,
        },
        temperature=0.4,
        tools=frozenset({ToolCapability.PRESENTATION, ToolCapability.DOCUMENT}),
        finalize=_finalize_writing,
    ),
)


def get_phase(name: PhaseName) -> PhaseDefinition:
    return next(phase for phase in PHASES if phase.name is name)
