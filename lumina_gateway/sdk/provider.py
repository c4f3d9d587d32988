"""
Generative content provider backed by the OpenAI API.

Returns parsed JSON for structured prompts and raw bytes for images and
narration. Provider exceptions propagate unchanged so the retry policy can
classify them.
"""

import base64
import json
import logging
from typing import Any, Dict, Optional, Protocol

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class GenerativeProvider(Protocol):
    """Interface the orchestrator consumes."""

    async def generate(self, prompt: str, result_shape: Dict[str, Any]) -> Any:
        ...

    async def generate_image(self, prompt: str, style_hint: str) -> bytes:
        ...

    async def generate_speech(self, text: str) -> bytes:
        ...


class OpenAIProvider:
    """Structured text, image and speech generation through OpenAI.

    Args:
        text_model: Chat model used for structured output (required)
        image_model: Image model
        audio_model: Text-to-speech model
        audio_voice: Voice for narration
        temperature: Sampling temperature for text
        client: Pre-built AsyncOpenAI client; one is created if omitted.
            SDK-level retries are always switched off; RetryPolicy is the
            only retry layer.

    Raises:
        ValueError: If text_model is missing/empty
    """

    def __init__(
        self,
        text_model: str,
        image_model: str = "gpt-image-1",
        audio_model: str = "gpt-4o-mini-tts",
        audio_voice: str = "alloy",
        temperature: Optional[float] = 0.4,
        client: Optional[AsyncOpenAI] = None,
    ):
        if not text_model or not text_model.strip():
            raise ValueError("text_model is required and cannot be empty")

        self.text_model = text_model
        self.image_model = image_model
        self.audio_model = audio_model
        self.audio_voice = audio_voice
        self.temperature = temperature
        self.client = (client or AsyncOpenAI()).with_options(max_retries=0)

    async def generate(self, prompt: str, result_shape: Dict[str, Any]) -> Any:
        """Generate JSON matching ``result_shape``.

        Structured output needs an object at the root, so array shapes are
        wrapped in ``{"items": [...]}`` and unwrapped again.

        Args:
            prompt: User prompt
            result_shape: JSON Schema of the expected result

        Returns:
            Parsed JSON result

        Raises:
            ValueError: If the response is empty or not valid JSON
            OpenAI API errors: Propagated without modification
        """
        if not prompt:
            raise ValueError("prompt is required and cannot be empty")

        wrapped = result_shape.get("type") == "array"
        schema = result_shape
        if wrapped:
            schema = {
                "type": "object",
                "properties": {"items": result_shape},
                "required": ["items"],
                "additionalProperties": False,
            }

        response = await self.client.chat.completions.create(
            model=self.text_model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "result", "schema": schema, "strict": True},
            },
        )

        if not response.choices or not response.choices[0].message.content:
            raise ValueError("Provider response missing content")

        try:
            parsed = json.loads(response.choices[0].message.content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Provider returned invalid JSON: {e}") from e

        if response.usage is not None:
            logger.debug(
                "provider: %s used %d prompt + %d completion tokens",
                self.text_model,
                response.usage.prompt_tokens,
                response.usage.completion_tokens,
            )
        return parsed["items"] if wrapped else parsed

    async def generate_image(self, prompt: str, style_hint: str) -> bytes:
        """Generate one image and return its bytes.

        Raises:
            ValueError: If no image data came back
            OpenAI API errors: Propagated without modification
        """
        kwargs: Dict[str, Any] = {}
        if self.image_model.startswith("dall-e"):
            kwargs["response_format"] = "b64_json"
        response = await self.client.images.generate(
            model=self.image_model,
            prompt=f"{prompt} -- {style_hint}",
            n=1,
            **kwargs,
        )
        if not response.data or not response.data[0].b64_json:
            raise ValueError("No image data returned")
        return base64.b64decode(response.data[0].b64_json)

    async def generate_speech(self, text: str) -> bytes:
        """Narrate ``text`` and return the audio bytes (mp3)."""
        response = await self.client.audio.speech.create(
            model=self.audio_model,
            voice=self.audio_voice,
            input=text,
        )
        return response.content
