"""
Gemini AI client.

Thin wrapper over google-generativeai used by the triage and draft features.
"""
import json
import re
from typing import Optional
import google.generativeai as genai

from superhuman.config import get_settings
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import AIError

logger = get_logger(__name__)

settings = get_settings()
if settings.gemini_api_key:
    genai.configure(api_key=settings.gemini_api_key)

# Tried after settings.gemini_model when it is not available to the key
FALLBACK_MODELS = ["gemini-flash-latest", "gemini-1.5-flash"]


async def complete(
    prompt: str,
    system_instruction: Optional[str] = None,
    max_tokens: int = 800,
    temperature: float = 0.4,
    json_mode: bool = False,
) -> str:
    """
    Generate a completion using Gemini.

    Args:
        prompt: The user prompt
        system_instruction: Optional system instruction
        max_tokens: Maximum tokens in response
        temperature: Creativity parameter (0-1)
        json_mode: Ask for application/json and strip any markdown fence

    Returns:
        The generated text response

    Raises:
        AIError: If Gemini API fails or returns nothing
    """
    if not settings.gemini_api_key:
        raise AIError("Gemini API key not configured")

    candidates = [settings.gemini_model] + [m for m in FALLBACK_MODELS if m != settings.gemini_model]
    last_error = None

    for model_name in candidates:
        model = genai.GenerativeModel(
            model_name=model_name,
            system_instruction=system_instruction,
            generation_config=genai.types.GenerationConfig(
                max_output_tokens=max_tokens,
                temperature=temperature,
                response_mime_type="application/json" if json_mode else "text/plain",
            ),
        )

        try:
            logger.info(f"Generating with model: {model_name}")
            response = await model.generate_content_async(prompt)
        except Exception as e:
            # Unknown model names come back as 404, anything else is fatal
            if "404" in str(e) or "not found" in str(e).lower():
                logger.warning(f"Model {model_name} not available, trying next...")
                last_error = e
                continue
            logger.error(f"Gemini API error: {e}")
            raise AIError(f"AI service unavailable: {e}")

        if not response.candidates or not response.candidates[0].content.parts:
            reason = response.candidates[0].finish_reason if response.candidates else "none"
            raise AIError(f"Empty response from {model_name} (finish reason: {reason})")

        content = response.text.strip()
        if not content:
            raise AIError("Received empty text content")

        return extract_json(content) if json_mode else content

    logger.error(f"No Gemini model available: {last_error}")
    raise AIError("All AI models failed")


def extract_json(text: str) -> str:
    """Extract JSON from a response that might have markdown formatting."""
    json_match = re.search(r'```(?:json)?\s*([\s\S]*?)\s*```', text)
    if json_match:
        return json_match.group(1).strip()

    json_match = re.search(r'(\{[\s\S]*\}|\[[\s\S]*\])', text)
    if json_match:
        return json_match.group(1).strip()

    return text


async def parse_json_response(
    prompt: str,
    system_instruction: Optional[str] = None,
    temperature: float = 0.2,
) -> dict:
    """
    Get a JSON object from Gemini.

    Raises:
        AIError: Model failure or a reply that is not a JSON object
    """
    response = await complete(
        prompt=prompt,
        system_instruction=system_instruction,
        temperature=temperature,
        json_mode=True,
    )

    try:
        data = json.loads(response)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse JSON from Gemini: {e}")
        raise AIError("AI returned malformed output")

    if not isinstance(data, dict):
        raise AIError("AI returned malformed output")
    return data
