from creditmemo.models.memo_models import MemoData
from creditmemo.models.memo_models import MemoPatch
from creditmemo.models.memo_models import TermSheet
from creditmemo.services.merge import is_present
from creditmemo.services.merge import merge
from creditmemo.services.merge import present_fields
from creditmemo.services.merge import project_patch
from creditmemo.services.merge import restrict_patch


def _doc(**kwargs) -> MemoData:
    return MemoData.model_validate(kwargs)


def test_is_present():
    assert not is_present(None)
    assert not is_present("")
    assert not is_present("   ")
    assert not is_present([])
    assert is_present("text")
    assert is_present(["a"])
    assert is_present(0)


def test_empty_patch_returns_document_unchanged():
    doc = _doc(companyOverview="Acme makes widgets.")
    assert merge(doc, MemoPatch()) is doc
    assert merge(doc, None) is doc


def test_patch_value_wins_when_present():
    doc = _doc(companyOverview="Old overview", marketAnalysis="Old market")
    patch = MemoPatch.model_validate({"companyOverview": "New overview"})

    merged = merge(doc, patch)

    assert merged.company_overview == "New overview"
    assert merged.market_analysis == "Old market"
    assert doc.company_overview == "Old overview"


def test_empty_values_fall_back_to_document():
    doc = _doc(companyOverview="Kept", investmentThesis=["Kept thesis"])
    patch = MemoPatch.model_validate({"companyOverview": "", "investmentThesis": [], "marketAnalysis": None})

    merged = merge(doc, patch)

    assert merged.company_overview == "Kept"
    assert merged.investment_thesis == ["Kept thesis"]
    assert merged is doc


def test_merge_is_idempotent():
    doc = _doc(title="Draft memo")
    patch = MemoPatch.model_validate(
        {
            "companyOverview": "Acme",
            "termSheet": {"borrower": "Acme Corp", "amount": "$250M"},
            "risks": [{"risk": "Concentration", "impact": "High"}],
        }
    )

    once = merge(doc, patch)
    twice = merge(once, patch)

    assert twice == once


def test_nested_term_sheet_merges_field_by_field():
    doc = _doc(termSheet={"borrower": "Acme Corp", "amount": "$250M", "tenor": "5 years"})
    patch = MemoPatch.model_validate({"termSheet": {"governingLaw": "New York", "amount": ""}})

    merged = merge(doc, patch)

    assert isinstance(merged.term_sheet, TermSheet)
    assert merged.term_sheet.borrower == "Acme Corp"
    assert merged.term_sheet.amount == "$250M"
    assert merged.term_sheet.tenor == "5 years"
    assert merged.term_sheet.governing_law == "New York"


def test_list_fields_are_replaced_not_appended():
    doc = _doc(risks=[{"risk": "Old risk"}, {"risk": "Another old risk"}])
    patch = MemoPatch.model_validate({"risks": [{"risk": "New risk"}]})

    merged = merge(doc, patch)

    assert [r.risk for r in merged.risks] == ["New risk"]


def test_restrict_patch_drops_foreign_fields():
    patch = MemoPatch.model_validate(
        {
            "companyOverview": "Acme",
            "risks": [{"risk": "Not mine"}],
            "termSheet": {"borrower": "Acme Corp", "governingLaw": "New York"},
        }
    )

    restricted = restrict_patch(patch, {"company_overview": True, "term_sheet": {"borrower"}})

    assert restricted.company_overview == "Acme"
    assert restricted.risks is None
    assert restricted.term_sheet.borrower == "Acme Corp"
    assert restricted.term_sheet.governing_law is None
    assert present_fields(restricted) == {"company_overview", "term_sheet.borrower"}


def test_restrict_patch_keeps_absent_fields_absent():
    patch = MemoPatch.model_validate({"risks": [{"risk": "R"}]})

    restricted = restrict_patch(patch, {"company_overview": True, "market_analysis": True})

    assert restricted.model_fields_set == set()
    assert present_fields(restricted) == set()


def test_project_patch_reads_current_document_values():
    doc = _doc(companyOverview="Acme", marketAnalysis="Growing", risks=[{"risk": "R"}])

    projected = project_patch(doc, {"company_overview": True, "market_analysis": True})

    assert projected.company_overview == "Acme"
    assert projected.market_analysis == "Growing"
    assert projected.risks is None
