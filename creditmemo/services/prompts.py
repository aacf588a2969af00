"""Phase instructions and context templates.

Each phase has an instruction string describing the JSON object it must
return, and a Jinja2 template that embeds the already-merged document fields
the phase reads.
"""

import json
import logging
import pathlib
from typing import Any

import jinja2

from creditmemo.core.exceptions import ConfigurationError
from creditmemo.models.workflow_models import PhaseName

logger = logging.getLogger(__name__)

PROMPT_DIR = pathlib.Path(__file__).parent / "prompt_templates"


def _to_json(value: Any) -> str:
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json", by_alias=True)
    elif isinstance(value, list):
        value = [v.model_dump(mode="json", by_alias=True) if hasattr(v, "model_dump") else v for v in value]
    return json.dumps(value, ensure_ascii=False)


env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(PROMPT_DIR),
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=True,
)
env.filters["tojson_memo"] = _to_json


DATA_COLLECTION_INSTRUCTIONS = """
You are the data collection agent of a private credit underwriting team.
Find verified information about the company named in the request.

TASKS:
1. Identify the legal entity, ticker (if public) and industry.
2. Extract the latest revenue, EBITDA and debt figures.
3. Describe the business model and market position.
4. Identify the main competitors.

OUTPUT: a JSON object with:
- companyOverview (string)
- marketAnalysis (string)
- competitivePosition (string)
- keyFinancials (object with revenue, ebitda, debt)
- businessModel (string)
- competitors (array of strings)

If real-time data is unavailable, rely on internal knowledge and state the as-of date.
"""

FINANCIAL_MODELING_INSTRUCTIONS = """
You are the financial modeling agent. Build an institutional three-statement model.

The 'financialModel' object has 'activeSheetId', 'activeScenario' and 'sheets'.
Use these sheet ids: dashboard, assumptions, sources, revenue, pnl, bs, cf, debt, returns, waterfall.
Each sheet has 'id', 'name', 'columns' (id, label, type in historical|projection|input|output|text)
and 'rows' (id, label, format in currency|percentage|number|text, values keyed by column id).
Use stable snake_case row ids. The balance sheet carries rows 'cash', 'total_assets' and
'total_liabilities_equity'; the cash flow carries 'ending_cash'; the debt sheet carries 'total_leverage'.

RULES:
- Assets must equal liabilities plus equity; plug with cash or revolver.
- Ending cash flow cash must equal balance sheet cash.
- Calculated rows have no empty cells.

OUTPUT: a JSON object with:
- financialModel (object as described)
- financialAnalysis (string commentary on trends)
- scenarios (array of {caseName: "Base Case"|"Upside Case"|"Downside Case", probability, irr, moic, description, recovery})
- liquidationWaterfall (array of {priority, claimClass, claimAmount, recoveryAmount, recoveryPercent})
"""

RISK_ASSESSMENT_INSTRUCTIONS = """
You are the risk assessment agent. Identify and score the material risks.

TASKS:
1. Identify 3-5 key risks across Business, Financial, Operational, Legal and Market categories.
2. Score probability (Low/Medium/High), impact (Low/Medium/High/Critical) and velocity (Slow/Medium/Fast).
3. Define a mitigant for each risk and the residual risk (Low/Medium/High).

OUTPUT: a JSON object with:
- risks (array of {category, risk, mitigant, impact, probability, velocity, residualRisk})
"""

DEAL_STRUCTURING_INSTRUCTIONS = """
You are the deal structuring agent. Design the credit facility.

TASKS:
1. Facility type, amount and tenor.
2. Pricing: base rate plus spread, with a leverage-based pricing grid and default rate.
3. Fees: origination, commitment and exit.
4. Amortization schedule and prepayment terms.
5. Collateral package with advance rates, and guarantors.

OUTPUT: a JSON object with:
- termSheet (object with borrower, facilityType, amount, tenor, pricing, baseRate, spread,
  pricingGrid [{leverageRange, spread}], defaultRate, fees [{type, amount, paymentTerms, rationale}],
  amortization [{period, percentage, type}], prepayments [{type, description, conditions}],
  collateral [{assetCategory, bookValue, liquidationValue, advanceRate, loanCoverage}], guarantors)
- capitalStructure (array of {instrument, amount, pricing, maturity, leverageMetric, seniority})
"""

COVENANT_DESIGN_INSTRUCTIONS = """
You are the covenant design agent. Calibrate the covenant package.

TASKS:
1. Maintenance covenants: maximum leverage and minimum coverage with 25-30% headroom to the model.
2. Negative covenants on indebtedness, liens, asset sales and restricted payments, with permitted baskets.
3. Conditions precedent (documentary and financial).
4. Reporting requirements and governing law.

OUTPUT: a JSON object with:
- termSheet (object with maintenanceCovenants [{name, initialLevel, targetLevel, headroom, frequency, testingPeriod}],
  negativeCovenants [{restriction, details, exceptions}], financialCovenants, conditionsPrecedent
  [{category, item, status}], reportingRequirements [{report, frequency, deadline}], governingLaw)
"""

WRITING_INSTRUCTIONS = """
You are the documentation agent. Assemble the final investment memorandum.

TASKS:
1. Executive summary with recommendation, thesis and key metrics.
2. The top 3-5 investment highlights.
3. Business analysis of the company and its market.
4. Downside analysis summarizing liquidation recovery.
5. A final "Approve" or "Conditional" recommendation.

OUTPUT: a JSON object with:
- title (string)
- recommendation (string)
- executiveSummary (string)
- investmentThesis (array of strings)
- investmentHighlights (array of strings)
- keyTerms (array of {label, value})
- businessAnalysis (string)
- downsideAnalysis (string)
- termSheet (optional refinements of any term sheet field)
"""

PHASE_INSTRUCTIONS: dict[PhaseName, str] = {
    PhaseName.DATA_COLLECTION: DATA_COLLECTION_INSTRUCTIONS,
    PhaseName.FINANCIAL_MODELING: FINANCIAL_MODELING_INSTRUCTIONS,
    PhaseName.RISK_ASSESSMENT: RISK_ASSESSMENT_INSTRUCTIONS,
    PhaseName.DEAL_STRUCTURING: DEAL_STRUCTURING_INSTRUCTIONS,
    PhaseName.COVENANT_DESIGN: COVENANT_DESIGN_INSTRUCTIONS,
    PhaseName.WRITING: WRITING_INSTRUCTIONS,
}


def get_phase_instructions(phase: PhaseName) -> str:
    try:
        return PHASE_INSTRUCTIONS[phase].strip()
    except KeyError:
        raise ConfigurationError(f"No instructions defined for phase '{phase}'.") from None


def render_template(template_name: str, context: dict[str, Any]) -> str:
    try:
        template = env.get_template(template_name)
        return template.render(**context)
    except jinja2.TemplateNotFound:
        logger.error("Template not found: %s", template_name)
        raise ConfigurationError(f"Internal configuration error: Template '{template_name}' not found.") from None
    except jinja2.UndefinedError as e:
        logger.error("Template %s rendered with missing context: %s", template_name, str(e))
        raise ConfigurationError(f"Template '{template_name}' is missing context: {e}") from e
