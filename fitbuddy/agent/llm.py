"""LLM backend for FitBuddy using Gemini via the google-genai SDK.

Two entry points are used by the conversation layer:
    complete()        -- chat completion over an ordered list of role/content dicts
    describe_image()  -- vision call for a base64-encoded image plus a prompt

Service failures are mapped onto two exception classes so the caller can
tell a rate-limit (retry shortly) apart from everything else (connectivity).
"""

import base64
import logging
import os

from google import genai
from google.genai import errors as genai_errors

logger = logging.getLogger(__name__)

MODEL = os.environ.get("FITBUDDY_MODEL", "gemini-2.5-flash")

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000

# Gemini names the assistant role "model"
_ROLE_MAP = {"user": "user", "assistant": "model"}


class LLMError(Exception):
    """Base class for LLM service failures."""


class RateLimitError(LLMError):
    """The service refused the request because of rate limiting (HTTP 429)."""


class LLMConnectionError(LLMError):
    """The service could not be reached or returned a non rate-limit error."""


def get_client() -> genai.Client:
    """Create a Gemini client using the API key from environment."""
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GEMINI_API_KEY not set in environment")
    return genai.Client(api_key=api_key)


def _to_contents(messages: list[dict]) -> tuple[str | None, list]:
    """Split role/content dicts into a system instruction and Gemini contents."""
    system_parts = []
    contents = []
    for message in messages:
        role = message.get("role", "user")
        content = message.get("content", "")
        if role == "system":
            system_parts.append(content)
            continue
        contents.append(
            genai.types.Content(
                role=_ROLE_MAP.get(role, "user"),
                parts=[genai.types.Part(text=content)],
            )
        )
    system_instruction = "\n\n".join(system_parts) if system_parts else None
    return system_instruction, contents


def _generate(contents, config: genai.types.GenerateContentConfig, model: str) -> str:
    try:
        client = get_client()
        response = client.models.generate_content(
            model=model,
            contents=contents,
            config=config,
        )
    except genai_errors.APIError as e:
        if e.code == 429:
            logger.warning("LLM rate limited: %s", e)
            raise RateLimitError(f"AI service rate limited: {e}") from e
        logger.warning("LLM API error %s: %s", e.code, e)
        raise LLMConnectionError(f"AI service error: {e}") from e
    except Exception as e:
        logger.warning("LLM request failed: %s", e)
        raise LLMConnectionError(f"Failed to communicate with AI service: {e}") from e

    return (response.text or "").strip()


def complete(
    messages: list[dict],
    temperature: float = DEFAULT_TEMPERATURE,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    model: str | None = None,
) -> str:
    """Run a chat completion and return the response text.

    Args:
        messages: Ordered list of {"role": "system"|"user"|"assistant", "content": str}
        temperature: Sampling temperature
        max_tokens: Maximum output tokens
        model: Model name override (defaults to MODEL)

    Raises:
        RateLimitError: the service answered with HTTP 429
        LLMConnectionError: any other API or transport failure
    """
    system_instruction, contents = _to_contents(messages)
    config = genai.types.GenerateContentConfig(
        system_instruction=system_instruction,
        temperature=temperature,
        max_output_tokens=max_tokens,
    )
    return _generate(contents, config, model or MODEL)


def describe_image(
    image_base64: str,
    prompt: str,
    temperature: float = 0.3,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    mime_type: str = "image/jpeg",
    model: str | None = None,
) -> str:
    """Describe a base64-encoded image according to prompt."""
    try:
        image_bytes = base64.b64decode(image_base64, validate=True)
    except ValueError as e:
        raise LLMError(f"Image payload is not valid base64: {e}") from e

    contents = [
        genai.types.Content(
            role="user",
            parts=[
                genai.types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                genai.types.Part(text=prompt),
            ],
        ),
    ]
    config = genai.types.GenerateContentConfig(
        temperature=temperature,
        max_output_tokens=max_tokens,
    )
    return _generate(contents, config, model or MODEL)


def test_connection() -> str:
    """Send a test prompt to Gemini and return the response text."""
    return complete(
        [{"role": "user", "content": "Say 'FitBuddy connected successfully' and nothing else."}],
        temperature=0.0,
        max_tokens=20,
    )
