"""Generation logic package.

This package groups the pieces that drive the six-phase memorandum workflow
(phase definitions, attachment decoding, the run state machine, the event
channel and the NDJSON stream). Keeping them here allows
`creditmemo/api/routes.py` to stay minimal and focused on HTTP routing while
core business logic lives in composable modules.
"""

from .confirmation import confirm_run  # noqa: F401
from .file_processing import decode_attachments  # noqa: F401
from .phases import PHASES  # noqa: F401

# Re-export most commonly-used helpers for convenience
from .stream_orchestrator import _stream_workflow_logic  # noqa: F401
from .workflow_channel import WorkflowChannel  # noqa: F401
from .workflow_orchestrator import WorkflowOrchestrator  # noqa: F401
from .workflow_orchestrator import WorkflowRun  # noqa: F401
from .workflow_orchestrator import run_workflow  # noqa: F401
