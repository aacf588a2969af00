import json

import pytest

from creditmemo.core.exceptions import ConfigurationError
from creditmemo.generation_logic.phases import PHASES
from creditmemo.models.memo_models import MemoData
from creditmemo.services.prompts import get_phase_instructions
from creditmemo.services.prompts import render_template


@pytest.fixture
def memo():
    return MemoData.model_validate(
        {
            "companyOverview": "Acme Corp manufactures industrial widgets.",
            "financialAnalysis": "Margins are stable.",
            "termSheet": {"borrower": "Acme Corp", "amount": "$250M"},
            "scenarios": [{"caseName": "Base Case", "irr": 12.5}],
        }
    )


@pytest.mark.parametrize("phase", PHASES, ids=lambda p: p.name.value)
def test_every_phase_template_renders(phase, memo):
    rendered = render_template(
        phase.template,
        {
            "request_text": "Analyze Acme Corp",
            "memo": memo,
            "research_notes": "{}",
            "instructions": get_phase_instructions(phase.name),
        },
    )
    assert "OUTPUT: a JSON object" in rendered


def test_covenant_context_carries_term_sheet_as_json(memo):
    phase = PHASES[4]
    rendered = render_template(
        phase.template,
        {"request_text": "r", "memo": memo, "research_notes": "{}", "instructions": "i"},
    )
    terms_line = next(line for line in rendered.splitlines() if line.startswith("Current Terms: "))
    terms = json.loads(terms_line.removeprefix("Current Terms: "))
    assert terms["borrower"] == "Acme Corp"
    assert terms["amount"] == "$250M"


def test_missing_template_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        render_template("does_not_exist.jinja2", {})


def test_missing_context_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        render_template("confirmation.jinja2", {"request_text": "only this"})


def test_confirmation_prompt():
    rendered = render_template("confirmation.jinja2", {"request_text": "Analyze Acme", "phase_count": 6})
    assert rendered.startswith('The user asked: "Analyze Acme".')
    assert "through all 6 phases" in rendered
