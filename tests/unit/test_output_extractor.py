from unittest.mock import MagicMock

import pytest

from creditmemo.core.exceptions import JSONParsingError
from creditmemo.services import output_extractor
from creditmemo.services.output_extractor import EMPTY_STRUCTURE
from creditmemo.services.output_extractor import extract_json
from creditmemo.services.output_extractor import extract_payload
from creditmemo.services.output_extractor import parse_patch
from creditmemo.services.output_extractor import patch_from_data
from creditmemo.services.output_extractor import strip_code_fence
from creditmemo.services.providers.base import ContentSegment
from creditmemo.services.providers.base import RawOutput
from creditmemo.services.providers.base import SegmentKind


def _raw(*segments: ContentSegment) -> RawOutput:
    return RawOutput(provider="stub", model="stub-model", segments=segments)


@pytest.mark.parametrize(
    "text, expected",
    [
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('```\n{"a": 1}\n```', '{"a": 1}'),
        ('  \n```json {"a": 1}```  ', '{"a": 1}'),
        ('{"a": 1}', '{"a": 1}'),
        ('  {"a": 1}\n', '{"a": 1}'),
    ],
)
def test_strip_code_fence(text, expected):
    assert strip_code_fence(text) == expected


def test_extract_payload_uses_first_text_segment():
    raw = _raw(
        ContentSegment(SegmentKind.REASONING, "thinking about it"),
        ContentSegment(SegmentKind.TOOL_USE),
        ContentSegment(SegmentKind.TEXT, '```json\n{"risks": []}\n```'),
        ContentSegment(SegmentKind.TEXT, '{"ignored": true}'),
    )
    assert extract_payload(raw) == '{"risks": []}'


def test_extract_payload_without_text_segment_returns_empty_structure():
    raw = _raw(ContentSegment(SegmentKind.REASONING, "only thoughts"))
    assert extract_payload(raw) == EMPTY_STRUCTURE
    assert extract_payload(_raw()) == EMPTY_STRUCTURE
    assert extract_payload(None) == EMPTY_STRUCTURE


def test_extract_json_recovers_from_surrounding_prose():
    text = 'Here is the analysis:\n{"companyOverview": "Acme"}\nLet me know if you need more.'
    assert extract_json(text) == {"companyOverview": "Acme"}


def test_extract_json_finds_inner_fenced_block():
    text = 'Result below.\n```json\n{"title": "Memo"}\n```\nDone.'
    assert extract_json(text) == {"title": "Memo"}


def test_extract_json_rejects_non_json():
    with pytest.raises(JSONParsingError):
        extract_json("not json")


def test_patch_from_data_rejects_non_object_root():
    with pytest.raises(JSONParsingError):
        patch_from_data(["a", "b"])


def test_patch_from_data_rejects_wrong_shapes():
    with pytest.raises(JSONParsingError):
        patch_from_data({"risks": "should be a list"})


def test_parse_patch_ignores_unknown_keys():
    patch = parse_patch('{"companyOverview": "Acme", "keyFinancials": {"revenue": 10}}')
    assert patch.company_overview == "Acme"
    assert patch.model_fields_set == {"company_overview"}


def test_empty_structure_parses_to_empty_patch():
    patch = parse_patch(EMPTY_STRUCTURE)
    assert patch.model_fields_set == set()


def test_log_lines_carry_the_request_id(monkeypatch):
    mock_logger = MagicMock()
    monkeypatch.setattr(output_extractor, "logger", mock_logger)

    with pytest.raises(JSONParsingError):
        extract_json("no object here", "run-42")

    logged = mock_logger.warning.call_args_list + mock_logger.error.call_args_list
    assert logged
    assert all(call.args[0].startswith("[%s]") and call.args[1] == "run-42" for call in logged)
