"""Validates and decodes request attachments.

Attachments arrive base64-encoded from the file-ingestion side. They are
decoded once, checked against the configured limits and handed to the data
collection phase as opaque binary payloads.
"""

import base64
import binascii
import logging
from collections.abc import Sequence

from creditmemo.core.config import settings
from creditmemo.core.exceptions import AttachmentError
from creditmemo.models.workflow_models import Attachment
from creditmemo.services.providers.base import EncodedAttachment

__all__ = [
    "decode_attachments",
]

logger = logging.getLogger(__name__)


def _decode_single_attachment(attachment: Attachment, request_id: str) -> EncodedAttachment:
    data = attachment.data
    # Data URLs ("data:application/pdf;base64,....") are accepted as well
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        payload = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning("[%s] Attachment %s is not valid base64", request_id, attachment.name)
        raise AttachmentError(f"Attachment '{attachment.name}' is not valid base64 data.") from e

    if len(payload) > settings.max_attachment_bytes:
        logger.warning(
            "[%s] Attachment %s too large: %d bytes",
            request_id,
            attachment.name,
            len(payload),
        )
        raise AttachmentError(
            f"Attachment '{attachment.name}' exceeds the {settings.max_attachment_bytes // (1024 * 1024)} MB limit."
        )
    return EncodedAttachment(name=attachment.name, mime_type=attachment.mime_type.lower(), payload=payload)


def decode_attachments(attachments: Sequence[Attachment], request_id: str) -> tuple[EncodedAttachment, ...]:
    """Decode all attachments of a run, enforcing count and size limits."""
    if len(attachments) > settings.max_attachments:
        raise AttachmentError(f"Too many attachments: {len(attachments)} (max {settings.max_attachments}).")

    decoded = tuple(_decode_single_attachment(att, request_id) for att in attachments)
    total = sum(len(att.payload) for att in decoded)
    if total > settings.max_total_attachment_bytes:
        logger.warning("[%s] Total attachment size too large: %d bytes", request_id, total)
        raise AttachmentError("Total attachment size exceeds the configured limit.")

    logger.debug(
        "[%s] Decoded %d attachments (%d bytes): %s",
        request_id,
        len(decoded),
        total,
        ", ".join(f"{att.name}:{att.kind.value}" for att in decoded),
    )
    return decoded
