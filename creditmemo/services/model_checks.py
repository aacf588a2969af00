"""Integrity checks over a generated financial model.

Rows are located by their stable ids (``bs.total_assets``, ``cf.ending_cash``
and so on) which the Financial Modeling phase is instructed to emit.
"""

import logging
import re

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

from creditmemo.models.memo_models import ColumnType
from creditmemo.models.memo_models import FinancialModel
from creditmemo.models.memo_models import ModelRow
from creditmemo.models.memo_models import ModelSheet
from creditmemo.models.memo_models import RowFormat
from creditmemo.models.memo_models import ValidationStatus

__all__ = [
    "CellValidation",
    "HealthCheck",
    "run_model_health_check",
    "validate_cell_input",
    "validation_status_from_checks",
]

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 0.1
MAX_TOTAL_LEVERAGE = 6.5

BALANCE_SHEET_ID = "bs"
CASH_FLOW_SHEET_ID = "cf"
DEBT_SHEET_ID = "debt"


class HealthCheck(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    label: str
    passed: bool
    details: str


class CellValidation(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_valid: bool
    message: str | None = None
    severity: str | None = None


def _cell(row: ModelRow, column_id: str) -> float:
    value = row.values.get(column_id)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def _projection_columns(sheet: ModelSheet) -> list[str]:
    return [col.id for col in sheet.columns if col.type is ColumnType.PROJECTION]


def _balance_check(bs: ModelSheet) -> HealthCheck:
    assets = bs.row("total_assets")
    liabilities_equity = bs.row("total_liabilities_equity")
    if assets is None or liabilities_equity is None:
        return HealthCheck(id="bs-struct", label="BS Balance", passed=False, details="Structure incomplete")

    max_diff = 0.0
    for column_id in _projection_columns(bs):
        diff = abs(_cell(assets, column_id) - _cell(liabilities_equity, column_id))
        if diff > BALANCE_TOLERANCE:
            max_diff = max(max_diff, diff)
    balanced = max_diff == 0.0
    return HealthCheck(
        id="bs-balance",
        label="BS Balance",
        passed=balanced,
        details="Balanced" if balanced else f"Imbalance: ${max_diff:.2f}",
    )


def _cash_tie_check(bs: ModelSheet, cf: ModelSheet) -> HealthCheck:
    bs_cash = bs.row("cash")
    ending_cash = cf.row("ending_cash")
    if bs_cash is None or ending_cash is None:
        return HealthCheck(id="cf-struct", label="Cash Tie", passed=False, details="Structure incomplete")

    reconciled = all(
        abs(_cell(bs_cash, column_id) - _cell(ending_cash, column_id)) <= BALANCE_TOLERANCE
        for column_id in _projection_columns(cf)
    )
    return HealthCheck(
        id="cf-tie",
        label="Cash Tie",
        passed=reconciled,
        details="Reconciled" if reconciled else "CF does not tie to BS",
    )


def _leverage_check(debt: ModelSheet) -> HealthCheck:
    leverage = debt.row("total_leverage")
    if leverage is None:
        return HealthCheck(id="lev-struct", label="Leverage", passed=False, details="Structure incomplete")

    values = [_cell(leverage, column_id) for column_id in _projection_columns(debt)]
    max_leverage = max(values, default=0.0)
    safe = max_leverage <= MAX_TOTAL_LEVERAGE
    return HealthCheck(
        id="lev-check",
        label="Leverage",
        passed=safe,
        details=f"Max {max_leverage:.1f}x" if safe else f"Critical: {max_leverage:.1f}x",
    )


def run_model_health_check(model: FinancialModel) -> list[HealthCheck]:
    """Run the balance, cash-tie and leverage checks over the projection columns.

    A check whose sheet is absent is skipped. A check whose sheet is present but
    lacks one of its rows is reported as failed with ``Structure incomplete``.
    """
    checks: list[HealthCheck] = []
    bs = model.sheet(BALANCE_SHEET_ID)
    cf = model.sheet(CASH_FLOW_SHEET_ID)
    debt = model.sheet(DEBT_SHEET_ID)

    if bs is not None:
        checks.append(_balance_check(bs))
    if bs is not None and cf is not None:
        checks.append(_cash_tie_check(bs, cf))
    if debt is not None:
        checks.append(_leverage_check(debt))

    failed = [check.id for check in checks if not check.passed]
    if failed:
        logger.info("Financial model checks failed: %s", ", ".join(failed))
    return checks


def validation_status_from_checks(checks: list[HealthCheck]) -> ValidationStatus:
    by_id = {check.id: check.passed for check in checks}
    return ValidationStatus(
        balance_sheet_balanced=by_id.get("bs-balance", False),
        cash_flow_tied=by_id.get("cf-tie", False),
        covenants_passed=by_id.get("lev-check", False),
        debt_schedule_integrity="lev-struct" not in by_id and "lev-check" in by_id,
    )


def validate_cell_input(value: str | float | int | None, format: RowFormat | str) -> CellValidation:
    """Validate a single user-entered cell against its row format."""
    if value is None or value == "":
        return CellValidation(is_valid=True)
    fmt = RowFormat(format)
    if fmt is RowFormat.TEXT:
        return CellValidation(is_valid=True)

    cleaned = re.sub(r"[$,%]", "", str(value)).strip()
    try:
        number = float(cleaned)
    except ValueError:
        return CellValidation(is_valid=False, message="Must be a valid number", severity="error")

    if fmt is RowFormat.PERCENTAGE and abs(number) > 100:
        return CellValidation(is_valid=True, message="Value > 100%. Confirm intended.", severity="warning")
    return CellValidation(is_valid=True)
