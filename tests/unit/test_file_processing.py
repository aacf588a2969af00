import base64

import pytest

from creditmemo.core.config import settings
from creditmemo.core.exceptions import AttachmentError
from creditmemo.generation_logic.file_processing import decode_attachments
from creditmemo.models.workflow_models import Attachment
from creditmemo.services.providers.base import AttachmentKind


def _attachment(name: str, payload: bytes, mime_type: str = "application/pdf") -> Attachment:
    return Attachment(name=name, mime_type=mime_type, data=base64.b64encode(payload).decode())


def test_decodes_base64_and_data_urls():
    plain = _attachment("report.pdf", b"%PDF-1.4 plain")
    data_url = Attachment(
        name="chart.png",
        mime_type="IMAGE/PNG",
        data="data:image/png;base64," + base64.b64encode(b"\x89PNG").decode(),
    )

    decoded = decode_attachments([plain, data_url], "req-1")

    assert decoded[0].payload == b"%PDF-1.4 plain"
    assert decoded[0].kind is AttachmentKind.DOCUMENT
    assert decoded[1].payload == b"\x89PNG"
    assert decoded[1].mime_type == "image/png"
    assert decoded[1].kind is AttachmentKind.IMAGE


def test_invalid_base64_is_rejected():
    bad = Attachment(name="broken.pdf", mime_type="application/pdf", data="***")
    with pytest.raises(AttachmentError, match="broken.pdf"):
        decode_attachments([bad], "req-1")


def test_too_many_attachments(monkeypatch):
    monkeypatch.setattr(settings, "max_attachments", 1)
    with pytest.raises(AttachmentError, match="Too many attachments"):
        decode_attachments([_attachment("a.pdf", b"a"), _attachment("b.pdf", b"b")], "req-1")


def test_single_attachment_size_limit(monkeypatch):
    monkeypatch.setattr(settings, "max_attachment_bytes", 4)
    with pytest.raises(AttachmentError, match="big.pdf"):
        decode_attachments([_attachment("big.pdf", b"0123456789")], "req-1")


def test_total_size_limit(monkeypatch):
    monkeypatch.setattr(settings, "max_total_attachment_bytes", 10)
    with pytest.raises(AttachmentError, match="Total attachment size"):
        decode_attachments([_attachment("a.pdf", b"012345"), _attachment("b.pdf", b"678901")], "req-1")


def test_text_reference_for_unsupported_types():
    (sheet,) = decode_attachments([_attachment("model.xlsx", b"x" * 200, "application/vnd.ms-excel")], "req-1")
    reference = sheet.text_reference()
    assert sheet.kind is AttachmentKind.OTHER
    assert reference.startswith("[Attachment: model.xlsx (application/vnd.ms-excel)]")
    assert reference.endswith("...)")
    assert len(reference.split("Base64 Data: ")[1]) == settings.attachment_excerpt_chars + len("...)")
