"""Memorandum data model.

``MemoData`` is the document accumulated across the workflow phases. Each
phase produces a ``MemoPatch``: the same shape with every field optional, so
an absent key is distinguishable from an empty value. Wire names are
camelCase (``companyOverview``, ``termSheet``); Python attributes are
snake_case and either form is accepted on input.
"""

from __future__ import annotations

import math
import re
from datetime import date
from enum import Enum
from typing import Annotated
from typing import Any

from pydantic import AfterValidator
from pydantic import BaseModel
from pydantic import BeforeValidator
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel


class _MemoModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        coerce_numbers_to_str=True,
    )


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MemoStatus(str, Enum):
    DRAFT = "Draft"
    REVIEW = "Review"
    APPROVED = "Approved"


class RiskCategory(str, Enum):
    BUSINESS = "Business"
    FINANCIAL = "Financial"
    OPERATIONAL = "Operational"
    LEGAL = "Legal"
    MARKET = "Market"


class ImpactLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class RiskVelocity(str, Enum):
    SLOW = "Slow"
    MEDIUM = "Medium"
    FAST = "Fast"


class ScenarioCase(str, Enum):
    BASE = "Base Case"
    UPSIDE = "Upside Case"
    DOWNSIDE = "Downside Case"


class AmortizationType(str, Enum):
    INTEREST_ONLY = "Interest Only"
    FIXED = "Fixed Amortization"
    BULLET = "Bullet"
    SWEEP = "Sweep"


class PrepaymentType(str, Enum):
    MANDATORY = "Mandatory"
    VOLUNTARY = "Voluntary"


class ConditionCategory(str, Enum):
    DOCUMENTARY = "Documentary"
    FINANCIAL = "Financial"
    BUSINESS = "Business"
    REGULATORY = "Regulatory"
    LEGAL = "Legal"


class ConditionStatus(str, Enum):
    PENDING = "Pending"
    SATISFIED = "Satisfied"
    WAIVED = "Waived"


class ColumnType(str, Enum):
    HISTORICAL = "historical"
    PROJECTION = "projection"
    INPUT = "input"
    OUTPUT = "output"
    TEXT = "text"


class RowFormat(str, Enum):
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    NUMBER = "number"
    TEXT = "text"


# ---------------------------------------------------------------------------
# Lenient input coercion
# ---------------------------------------------------------------------------

_LEVEL_ALIASES = {"med": "Medium", "mid": "Medium", "moderate": "Medium", "crit": "Critical"}
_CASE_ALIASES = {"base": "Base Case", "upside": "Upside Case", "downside": "Downside Case"}


def _choice(enum_cls: type[Enum], aliases: dict[str, str] | None = None, default: Enum | None = None):
    """Normalize an enum value case-insensitively. Anything outside the vocabulary becomes ``default``."""
    lookup = {member.value.lower(): member for member in enum_cls}
    aliases = aliases or {}

    def normalize(value: Any) -> Any:
        if isinstance(value, enum_cls):
            return value
        if not isinstance(value, str):
            return default
        key = value.strip().lower()
        key = aliases.get(key, key).lower()
        return lookup.get(key, default)

    return normalize


def _parse_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = re.sub(r"[$,%x\s]", "", value, flags=re.IGNORECASE)
        try:
            parsed = float(cleaned)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _coerce_number(value: Any) -> float:
    """Accept ``"12.5%"``, ``"$1,200"`` or ``"3.1x"`` where a number is expected; ``"N/A"`` reads as 0."""
    parsed = _parse_number(value)
    return 0.0 if parsed is None else parsed


def _coerce_optional_number(value: Any) -> float | None:
    return _parse_number(value)


def _coerce_int(value: Any) -> int:
    parsed = _parse_number(value)
    return 0 if parsed is None else int(parsed)


def _coerce_optional_int(value: Any) -> int | None:
    parsed = _parse_number(value)
    return None if parsed is None else int(parsed)


def _as_text(value: Any) -> Any:
    if isinstance(value, list):
        return "\n\n".join(str(item) for item in value if item is not None)
    return value


def _as_string_list(value: Any) -> Any:
    if isinstance(value, str):
        return [value] if value.strip() else []
    return value


def _drop_empty_cells(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: cell for key, cell in value.items() if cell is not None}
    return value


_scenario_case = _choice(ScenarioCase, _CASE_ALIASES)


def _known_cases(value: Any) -> Any:
    """Drop scenarios whose case name is not Base, Upside or Downside."""
    if not isinstance(value, list):
        return value
    known = []
    for item in value:
        if isinstance(item, dict) and _scenario_case(item.get("caseName", item.get("case_name"))) is None:
            continue
        known.append(item)
    return known


def _unique_cases(value: list[ScenarioOutcome]) -> list[ScenarioOutcome]:
    by_case: dict[ScenarioCase, ScenarioOutcome] = {}
    for outcome in value:
        by_case[outcome.case_name] = outcome
    return list(by_case.values())


Number = Annotated[float, BeforeValidator(_coerce_number)]
OptionalNumber = Annotated[float | None, BeforeValidator(_coerce_optional_number)]
Integer = Annotated[int, BeforeValidator(_coerce_int)]
OptionalInteger = Annotated[int | None, BeforeValidator(_coerce_optional_int)]
NarrativeText = Annotated[str, BeforeValidator(_as_text)]
NarrativeList = Annotated[list[str], BeforeValidator(_as_string_list)]
CellValues = Annotated[dict[str, float | str], BeforeValidator(_drop_empty_cells)]


# ---------------------------------------------------------------------------
# Risk register
# ---------------------------------------------------------------------------


class RiskFactor(_MemoModel):
    category: Annotated[RiskCategory, BeforeValidator(_choice(RiskCategory, default=RiskCategory.BUSINESS))] = RiskCategory.BUSINESS
    risk: str = ""
    mitigant: str = ""
    impact: Annotated[ImpactLevel, BeforeValidator(_choice(ImpactLevel, _LEVEL_ALIASES, default=ImpactLevel.MEDIUM))] = ImpactLevel.MEDIUM
    probability: Annotated[RiskLevel, BeforeValidator(_choice(RiskLevel, _LEVEL_ALIASES, default=RiskLevel.MEDIUM))] = RiskLevel.MEDIUM
    velocity: Annotated[RiskVelocity, BeforeValidator(_choice(RiskVelocity, _LEVEL_ALIASES, default=RiskVelocity.MEDIUM))] = RiskVelocity.MEDIUM
    residual_risk: Annotated[RiskLevel, BeforeValidator(_choice(RiskLevel, _LEVEL_ALIASES, default=RiskLevel.MEDIUM))] = RiskLevel.MEDIUM


# ---------------------------------------------------------------------------
# Financial model
# ---------------------------------------------------------------------------


class ModelColumn(_MemoModel):
    id: str
    label: str = ""
    type: Annotated[ColumnType, BeforeValidator(_choice(ColumnType, default=ColumnType.PROJECTION))] = ColumnType.PROJECTION
    width: OptionalInteger = None


class ModelRow(_MemoModel):
    id: str
    label: str = ""
    format: Annotated[RowFormat, BeforeValidator(_choice(RowFormat, default=RowFormat.TEXT))] = RowFormat.TEXT
    is_calculated: bool = False
    is_header: bool = False
    indent: Integer = 0
    values: CellValues = Field(default_factory=dict)


class ModelSheet(_MemoModel):
    id: str
    name: str = ""
    color: str | None = None
    columns: list[ModelColumn] = Field(default_factory=list)
    rows: list[ModelRow] = Field(default_factory=list)

    def row(self, row_id: str) -> ModelRow | None:
        return next((r for r in self.rows if r.id == row_id), None)


class ValidationStatus(_MemoModel):
    balance_sheet_balanced: bool = False
    cash_flow_tied: bool = False
    covenants_passed: bool = False
    debt_schedule_integrity: bool = False


class FinancialModel(_MemoModel):
    active_sheet_id: str = ""
    active_scenario: Annotated[ScenarioCase, BeforeValidator(_choice(ScenarioCase, _CASE_ALIASES, default=ScenarioCase.BASE))] = ScenarioCase.BASE
    sheets: list[ModelSheet] = Field(default_factory=list)
    validation_status: ValidationStatus | None = None

    def sheet(self, sheet_id: str) -> ModelSheet | None:
        return next((s for s in self.sheets if s.id == sheet_id), None)


# ---------------------------------------------------------------------------
# Term sheet
# ---------------------------------------------------------------------------


class FeeStructure(_MemoModel):
    type: str = ""
    amount: str = ""
    payment_terms: str = ""
    rationale: str = ""


class AmortizationItem(_MemoModel):
    period: str = ""
    percentage: Number = 0.0
    type: Annotated[AmortizationType, BeforeValidator(_choice(AmortizationType, default=AmortizationType.FIXED))] = AmortizationType.FIXED


class CollateralItem(_MemoModel):
    asset_category: str = ""
    book_value: Number = 0.0
    liquidation_value: Number = 0.0
    advance_rate: Number = 0.0
    loan_coverage: Number = 0.0


class CovenantDetail(_MemoModel):
    name: str = ""
    initial_level: str = ""
    target_level: str = ""
    headroom: str = ""
    frequency: str = ""
    testing_period: str | None = None


class PricingGridTier(_MemoModel):
    leverage_range: str = ""
    spread: str = ""


class PrepaymentTerm(_MemoModel):
    type: Annotated[PrepaymentType, BeforeValidator(_choice(PrepaymentType, default=PrepaymentType.VOLUNTARY))] = PrepaymentType.VOLUNTARY
    description: str = ""
    conditions: str = ""


class NegativeCovenant(_MemoModel):
    restriction: str = ""
    details: str = ""
    exceptions: str = ""


class ConditionPrecedent(_MemoModel):
    category: Annotated[ConditionCategory, BeforeValidator(_choice(ConditionCategory, default=ConditionCategory.DOCUMENTARY))] = ConditionCategory.DOCUMENTARY
    item: str = ""
    status: Annotated[ConditionStatus, BeforeValidator(_choice(ConditionStatus, default=ConditionStatus.PENDING))] = ConditionStatus.PENDING


class ReportingRequirement(_MemoModel):
    report: str = ""
    frequency: str = ""
    deadline: str = ""


class TermSheet(_MemoModel):
    borrower: str = ""
    facility_type: str = ""
    amount: str = ""
    tenor: str = ""

    pricing: str = ""
    base_rate: str = ""
    spread: str = ""
    pricing_grid: list[PricingGridTier] = Field(default_factory=list)
    default_rate: str = ""

    fees: list[FeeStructure] = Field(default_factory=list)
    amortization: list[AmortizationItem] = Field(default_factory=list)
    prepayments: list[PrepaymentTerm] = Field(default_factory=list)

    maintenance_covenants: list[CovenantDetail] = Field(default_factory=list)
    negative_covenants: list[NegativeCovenant] = Field(default_factory=list)
    financial_covenants: list[CovenantDetail] = Field(default_factory=list)

    collateral: list[CollateralItem] = Field(default_factory=list)
    guarantors: str = ""

    conditions_precedent: list[ConditionPrecedent] = Field(default_factory=list)
    reporting_requirements: list[ReportingRequirement] = Field(default_factory=list)

    governing_law: str = ""


# ---------------------------------------------------------------------------
# Capital structure, scenarios, liquidation
# ---------------------------------------------------------------------------


class KeyTerm(_MemoModel):
    label: str = ""
    value: str = ""


class CapitalStructureItem(_MemoModel):
    instrument: str = ""
    amount: Number = 0.0
    pricing: str = ""
    maturity: str = ""
    leverage_metric: Number = 0.0
    seniority: OptionalInteger = None


class ScenarioOutcome(_MemoModel):
    case_name: Annotated[ScenarioCase, BeforeValidator(_scenario_case)]
    probability: Number = 0.0
    irr: Number = 0.0
    moic: Number = 0.0
    description: str = ""
    recovery: OptionalNumber = None


class LiquidationLayer(_MemoModel):
    priority: Integer = 0
    claim_class: str = ""
    claim_amount: Number = 0.0
    recovery_amount: Number = 0.0
    recovery_percent: Number = 0.0


ScenarioSet = Annotated[list[ScenarioOutcome], BeforeValidator(_known_cases), AfterValidator(_unique_cases)]


# ---------------------------------------------------------------------------
# Document and patches
# ---------------------------------------------------------------------------


def _today() -> str:
    return date.today().isoformat()


class MemoData(_MemoModel):
    """The investment memorandum as accumulated by a workflow run."""

    title: str = ""
    status: Annotated[MemoStatus, BeforeValidator(_choice(MemoStatus, default=MemoStatus.DRAFT))] = MemoStatus.DRAFT
    last_updated: str = Field(default_factory=_today)

    # Executive summary
    recommendation: str = ""
    executive_summary: NarrativeText = ""
    investment_thesis: NarrativeList = Field(default_factory=list)

    # Terms and structure
    key_terms: list[KeyTerm] = Field(default_factory=list)
    term_sheet: TermSheet = Field(default_factory=TermSheet)
    capital_structure: list[CapitalStructureItem] = Field(default_factory=list)

    # Business summary
    company_overview: NarrativeText = ""
    market_analysis: NarrativeText = ""
    competitive_position: NarrativeText = ""

    investment_highlights: NarrativeList = Field(default_factory=list)

    risks: list[RiskFactor] = Field(default_factory=list)

    scenarios: ScenarioSet = Field(default_factory=list)

    # Collateral and liquidation
    liquidation_waterfall: list[LiquidationLayer] = Field(default_factory=list)
    downside_analysis: NarrativeText = ""

    business_analysis: NarrativeText = ""
    financial_model: FinancialModel = Field(default_factory=FinancialModel)
    financial_analysis: NarrativeText = ""

    def scenario(self, case: ScenarioCase | str) -> ScenarioOutcome | None:
        return next((s for s in self.scenarios if s.case_name == ScenarioCase(case)), None)


class TermSheetPatch(_MemoModel):
    borrower: str | None = None
    facility_type: str | None = None
    amount: str | None = None
    tenor: str | None = None
    pricing: str | None = None
    base_rate: str | None = None
    spread: str | None = None
    pricing_grid: list[PricingGridTier] | None = None
    default_rate: str | None = None
    fees: list[FeeStructure] | None = None
    amortization: list[AmortizationItem] | None = None
    prepayments: list[PrepaymentTerm] | None = None
    maintenance_covenants: list[CovenantDetail] | None = None
    negative_covenants: list[NegativeCovenant] | None = None
    financial_covenants: list[CovenantDetail] | None = None
    collateral: list[CollateralItem] | None = None
    guarantors: str | None = None
    conditions_precedent: list[ConditionPrecedent] | None = None
    reporting_requirements: list[ReportingRequirement] | None = None
    governing_law: str | None = None


class MemoPatch(_MemoModel):
    """A partial memorandum. ``None`` means the key was absent from the phase output."""

    title: str | None = None
    status: Annotated[MemoStatus | None, BeforeValidator(_choice(MemoStatus))] = None
    last_updated: str | None = None
    recommendation: str | None = None
    executive_summary: NarrativeText | None = None
    investment_thesis: NarrativeList | None = None
    key_terms: list[KeyTerm] | None = None
    term_sheet: TermSheetPatch | None = None
    capital_structure: list[CapitalStructureItem] | None = None
    company_overview: NarrativeText | None = None
    market_analysis: NarrativeText | None = None
    competitive_position: NarrativeText | None = None
    investment_highlights: NarrativeList | None = None
    risks: list[RiskFactor] | None = None
    scenarios: ScenarioSet | None = None
    liquidation_waterfall: list[LiquidationLayer] | None = None
    downside_analysis: NarrativeText | None = None
    business_analysis: NarrativeText | None = None
    financial_model: FinancialModel | None = None
    financial_analysis: NarrativeText | None = None
