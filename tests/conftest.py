import inspect
import json

import pytest

from creditmemo.services.providers.base import BackendProvider
from creditmemo.services.providers.base import ContentSegment
from creditmemo.services.providers.base import RawOutput
from creditmemo.services.providers.base import SegmentKind


def text_output(text: str, provider: str = "stub") -> RawOutput:
    return RawOutput(provider=provider, model="stub-model", segments=(ContentSegment(SegmentKind.TEXT, text),))


class StubProvider(BackendProvider):
    """Scripted backend: returns the queued responses in call order.

    A queued item may be a dict (sent back as JSON text), a string, a
    ``RawOutput``, an exception instance (raised) or an async callable
    receiving the request.
    """

    name = "stub"

    def __init__(self, responses=None, model: str = "stub-model"):
        super().__init__(model, 4000)
        self.responses = list(responses or [])
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("StubProvider ran out of scripted responses")
        item = self.responses.pop(0)
        if inspect.iscoroutinefunction(item):
            item = await item(request)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, RawOutput):
            return item
        if isinstance(item, (dict, list)):
            item = json.dumps(item)
        return text_output(item)


FINANCIAL_MODEL = {
    "activeSheetId": "bs",
    "activeScenario": "Base Case",
    "sheets": [
        {
            "id": "bs",
            "name": "Balance Sheet",
            "columns": [
                {"id": "fy24", "label": "FY24A", "type": "historical"},
                {"id": "fy25", "label": "FY25E", "type": "projection"},
                {"id": "fy26", "label": "FY26E", "type": "projection"},
            ],
            "rows": [
                {"id": "cash", "label": "Cash", "format": "currency", "values": {"fy24": 40, "fy25": 55, "fy26": 70}},
                {"id": "total_assets", "label": "Total Assets", "format": "currency", "values": {"fy24": 900, "fy25": 950, "fy26": 1000}},
                {
                    "id": "total_liabilities_equity",
                    "label": "Total Liabilities & Equity",
                    "format": "currency",
                    "values": {"fy24": 900, "fy25": 950, "fy26": 1000},
                },
            ],
        },
        {
            "id": "cf",
            "name": "Cash Flow",
            "columns": [
                {"id": "fy25", "label": "FY25E", "type": "projection"},
                {"id": "fy26", "label": "FY26E", "type": "projection"},
            ],
            "rows": [
                {"id": "ending_cash", "label": "Ending Cash", "format": "currency", "values": {"fy25": 55, "fy26": 70}},
            ],
        },
        {
            "id": "debt",
            "name": "Debt Schedule",
            "columns": [
                {"id": "fy25", "label": "FY25E", "type": "projection"},
                {"id": "fy26", "label": "FY26E", "type": "projection"},
            ],
            "rows": [
                {"id": "total_leverage", "label": "Total Leverage", "format": "number", "values": {"fy25": 5.0, "fy26": 4.2}},
            ],
        },
    ],
}


def acme_phase_outputs() -> list[dict]:
    """One canned JSON response per phase, in phase order."""
    return [
        {
            "companyOverview": "Acme Corp manufactures industrial widgets.",
            "marketAnalysis": "Fragmented market growing at 4% a year.",
            "competitivePosition": "Top three supplier in North America.",
            "keyFinancials": {"revenue": 500, "ebitda": 60, "debt": 120},
            "competitors": ["Globex", "Initech"],
        },
        {
            "financialModel": FINANCIAL_MODEL,
            "financialAnalysis": "Revenue grows steadily with stable margins.",
            "scenarios": [
                {"caseName": "Base Case", "probability": 60, "irr": 12.5, "moic": 1.4, "description": "Plan delivered."},
                {"caseName": "Upside Case", "probability": 20, "irr": 15.0, "moic": 1.6, "description": "Faster growth."},
                {"caseName": "Downside Case", "probability": 20, "irr": 6.0, "moic": 1.1, "description": "Margin squeeze."},
            ],
            "liquidationWaterfall": [
                {"priority": 1, "claimClass": "Senior Secured", "claimAmount": 250, "recoveryAmount": 225, "recoveryPercent": 90},
            ],
        },
        {
            "risks": [
                {
                    "category": "Business",
                    "risk": "Customer concentration",
                    "mitigant": "Multi-year supply contracts",
                    "impact": "High",
                    "probability": "Med",
                    "velocity": "Slow",
                    "residualRisk": "Low",
                }
            ]
        },
        {
            "termSheet": {
                "borrower": "Acme Corp",
                "facilityType": "Senior Secured Term Loan",
                "amount": "$250M",
                "tenor": "5 years",
                "pricing": "SOFR + 550 bps",
                "fees": [{"type": "Origination", "amount": "2.0%", "paymentTerms": "At close", "rationale": "Market"}],
            },
            "capitalStructure": [
                {"instrument": "Term Loan", "amount": 250, "pricing": "S+550", "maturity": "2030", "leverageMetric": 4.2}
            ],
        },
        {
            "termSheet": {
                "maintenanceCovenants": [
                    {
                        "name": "Max Total Leverage",
                        "initialLevel": "5.25x",
                        "targetLevel": "4.00x",
                        "headroom": "25%",
                        "frequency": "Quarterly",
                    }
                ],
                "governingLaw": "New York",
            }
        },
        {
            "title": "Investment Memo: Acme Corp",
            "recommendation": "Approve",
            "executiveSummary": "We recommend approval of a $250M senior secured term loan to Acme Corp.",
            "investmentThesis": ["Market leader", "Resilient cash flow"],
            "investmentHighlights": ["Diversified end markets"],
            "keyTerms": [{"label": "Amount", "value": "$250M"}],
            "businessAnalysis": "Stable industrial franchise.",
            "downsideAnalysis": "Senior lenders recover 90% in liquidation.",
        },
    ]


@pytest.fixture
def phase_outputs():
    return acme_phase_outputs()


@pytest.fixture
def stub_provider(phase_outputs):
    return StubProvider(phase_outputs)


@pytest.fixture
def financial_model_data():
    return json.loads(json.dumps(FINANCIAL_MODEL))
