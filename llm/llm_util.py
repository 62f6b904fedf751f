import time
from functools import lru_cache
from typing import Optional

from langchain_core.prompts import PromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI

from util.logging_util import log_llm_interaction, setup_logger

logger = setup_logger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


@lru_cache(maxsize=None)
def load_prompt(template_path: str) -> PromptTemplate:
    """Read a Jinja2 prompt template once per process."""
    with open(template_path, "r") as f:
        return PromptTemplate.from_template(f.read(), template_format="jinja2")


def _response_text(content) -> str:
    # Gemini may answer with a list of content parts instead of a string
    if isinstance(content, list):
        return "".join(part.get("text", "") for part in content if isinstance(part, dict))
    return content or ""


def get_llm_response(template_path: str, params: dict, model_name: str = DEFAULT_MODEL,
                     api_key: Optional[str] = None, temperature: Optional[float] = None) -> str:
    """
    Render a prompt template and send it to a Gemini chat model.

    Args:
        template_path: Path to the Jinja2 prompt template.
        params: Values for the template variables.
        model_name: The name of the Gemini model to use.
        api_key: Gemini API key. Falls back to the GOOGLE_API_KEY environment
            variable inside langchain when not given.
        temperature: Optional sampling temperature.

    Returns:
        The text of the model's answer.
    """
    start_time = time.time()

    llm_kwargs = {"model": model_name}
    if api_key:
        llm_kwargs["google_api_key"] = api_key
    if temperature is not None:
        llm_kwargs["temperature"] = temperature
    chain = load_prompt(template_path) | ChatGoogleGenerativeAI(**llm_kwargs)

    response_content = _response_text(chain.invoke(params).content)

    duration_ms = (time.time() - start_time) * 1000
    log_llm_interaction(logger, template_path, params, response_content, model_name, duration_ms)
    return response_content
