import logging

from creditmemo.generation_logic.phases import PHASES
from creditmemo.services.output_extractor import first_text
from creditmemo.services.prompts import render_template
from creditmemo.services.providers.base import BackendProvider
from creditmemo.services.providers.base import GenerationRequest

__all__ = [
    "FALLBACK_CONFIRMATION",
    "confirm_run",
]

logger = logging.getLogger(__name__)

CONFIRMATION_ROLE = (
    "You are the CreditAlpha Orchestrator. Summarize the actions taken by the agents briefly "
    "and confirm the analysis is ready for review."
)
FALLBACK_CONFIRMATION = "Analysis complete. The memorandum has been updated with the latest data from all agents."


async def confirm_run(provider: BackendProvider, request_text: str, request_id: str = "-") -> str:
    """Ask the run's backend for a short completion summary.

    The memorandum is already complete at this point, so any failure here
    degrades to ``FALLBACK_CONFIRMATION`` instead of failing the run.
    """
    try:
        prompt = render_template(
            "confirmation.jinja2",
            {"request_text": request_text, "phase_count": len(PHASES)},
        )
        raw = await provider.generate(
            GenerationRequest(
                system=CONFIRMATION_ROLE,
                user_content=prompt,
                temperature=0.3,
                token_budget=1024,
                json_output=False,
                request_id=request_id,
            )
        )
    except Exception as e:
        logger.warning("[%s] Confirmation step failed, using fallback: %s", request_id, str(e))
        return FALLBACK_CONFIRMATION

    text = (first_text(raw) or "").strip()
    if not text:
        logger.info("[%s] Confirmation returned no text, using fallback", request_id)
        return FALLBACK_CONFIRMATION
    return text
