"""Document merge engine.

``merge_record`` is the single field-wise combinator used for the memorandum
and for every nested sub-record: a patch value wins only when it is present
and non-empty, otherwise the document keeps its previous value.
"""

from typing import Any
from typing import TypeVar

from pydantic import BaseModel

from creditmemo.models.memo_models import MemoData
from creditmemo.models.memo_models import MemoPatch

M = TypeVar("M", bound=BaseModel)

# Field selection in pydantic's include syntax: True for a whole field,
# a set of names for part of a sub-record.
FieldSelection = dict[str, Any]


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) > 0
    return True


def merge_record(document: M, patch: BaseModel | None) -> M:
    if patch is None:
        return document

    updates: dict[str, Any] = {}
    for name in patch.model_fields_set:
        if name not in type(document).model_fields:
            continue
        value = getattr(patch, name)
        if not is_present(value):
            continue
        current = getattr(document, name)
        if isinstance(value, BaseModel) and isinstance(current, BaseModel):
            value = merge_record(current, value)
        if value != current:
            updates[name] = value

    if not updates:
        return document
    return document.model_copy(update=updates)


def merge(document: MemoData, patch: MemoPatch | None) -> MemoData:
    return merge_record(document, patch)


def restrict_patch(patch: MemoPatch, owned: FieldSelection) -> MemoPatch:
    """Keep only the fields in ``owned``; absent fields stay absent."""
    data = patch.model_dump(include=owned, exclude_unset=True)
    return MemoPatch.model_validate(data)


def project_patch(document: MemoData, owned: FieldSelection) -> MemoPatch:
    """The document's current values of ``owned`` fields, as a patch."""
    return MemoPatch.model_validate(document.model_dump(include=owned))


def present_fields(patch: MemoPatch) -> set[str]:
    """Dotted names of present leaf fields (``term_sheet.borrower``)."""
    names: set[str] = set()
    for name in patch.model_fields_set:
        value = getattr(patch, name)
        if not is_present(value):
            continue
        if isinstance(value, BaseModel) and name == "term_sheet":
            names.update(f"{name}.{sub}" for sub in value.model_fields_set if is_present(getattr(value, sub)))
        else:
            names.add(name)
    return names
