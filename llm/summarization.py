"""
Plain-language and clinical summaries of ingested text.
"""

from pathlib import Path
from typing import Optional

from ingestion.errors import UpstreamError
from llm.llm_util import DEFAULT_MODEL, get_llm_response
from util.logging_util import setup_logger

logger = setup_logger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"
PLAIN_SUMMARY_TEMPLATE = PROMPTS_DIR / "summarize_plain.jinja2"
CLINICAL_SUMMARY_TEMPLATE = PROMPTS_DIR / "summarize_clinical.jinja2"

MEDICAL_DISCLAIMER = (
    "\n\nIMPORTANT: This information is for educational purposes only and does not "
    "constitute medical advice. Consult your healthcare provider for personalized "
    "medical guidance."
)


class LLMSummarizer:
    """Summarizes text with a Gemini model.

    Any failure of the model call surfaces as UpstreamError.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL, api_key: Optional[str] = None):
        self.model_name = model_name
        self.api_key = api_key

    def _summarize(self, template: Path, text: str, temperature: float) -> str:
        try:
            response = get_llm_response(
                str(template),
                {"content": text},
                model_name=self.model_name,
                api_key=self.api_key,
                temperature=temperature,
            )
        except Exception as e:
            raise UpstreamError(f"Summarization failed: {e}") from e

        response = (response or "").strip()
        if not response:
            raise UpstreamError("Summarization returned an empty response")
        return response + MEDICAL_DISCLAIMER

    def summarize(self, text: str) -> str:
        """Plain-language summary for patients and caregivers."""
        return self._summarize(PLAIN_SUMMARY_TEMPLATE, text, temperature=0.7)

    def summarize_clinical(self, text: str) -> str:
        """Summary for healthcare professionals."""
        return self._summarize(CLINICAL_SUMMARY_TEMPLATE, text, temperature=0.5)
