"""
Google Gemini service for in-situ product placement image generation
"""
import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from google import genai
from google.genai import types

from insitu.core.config import Settings, settings as default_settings
from insitu.core.constants import ERROR_MESSAGES, PLACEMENT_PREAMBLE, PLACEMENT_SUFFIX
from insitu.core.exceptions import GenerationFailedError
from insitu.services.image_codec import EncodedImage, to_data_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedImage:
    """Inline image returned by the model"""

    data: bytes
    mime_type: str = "image/png"

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")

    @property
    def data_url(self) -> str:
        return to_data_url(self.base64, self.mime_type)


def build_placement_prompt(prompt: str, use_preamble: bool = True) -> str:
    """Wrap the user's environment prompt with the realistic-integration instructions"""
    prompt = prompt.strip()
    if not use_preamble:
        return prompt
    return f"{PLACEMENT_PREAMBLE} {prompt.rstrip('.')}. {PLACEMENT_SUFFIX}"


class GeminiImageService:
    """Single-attempt Gemini image generation for product placement"""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Any] = None):
        """Initialize the Gemini image service"""
        self.settings = settings or default_settings
        self.api_key = self.settings.google_ai_api_key
        self.model = self.settings.google_ai_image_model
        self.usage_stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "empty_responses": 0,
            "total_processing_time": 0.0,
            "last_reset": datetime.now(),
        }

        if client is not None:
            self.genai_client = client
            self.genai_configured = True
        elif self.api_key:
            self.genai_client = genai.Client(api_key=self.api_key)
            self.genai_configured = True

            if len(self.api_key) > 12:
                masked_key = f"{self.api_key[:8]}...{self.api_key[-4:]}"
                logger.info(f"Google AI API Key loaded: {masked_key}")

            logger.info(f"Google GenAI Client initialized for {self.model}")
        else:
            self.genai_client = None
            self.genai_configured = False
            logger.warning("Google AI API key not configured - image generation will not be available")

    def _build_contents(self, images: Sequence[EncodedImage], prompt: str) -> List[types.Content]:
        parts = [
            types.Part(inline_data=types.Blob(mime_type=image.mime_type, data=base64.b64decode(image.data)))
            for image in images
        ]
        parts.append(
            types.Part.from_text(text=build_placement_prompt(prompt, self.settings.use_placement_preamble))
        )
        return [types.Content(role="user", parts=parts)]

    def _build_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            response_modalities=["IMAGE", "TEXT"],
            temperature=self.settings.google_ai_temperature,
            top_p=self.settings.google_ai_top_p,
            top_k=self.settings.google_ai_top_k,
        )

    @staticmethod
    def _extract_image(response: Any) -> Optional[GeneratedImage]:
        """Return the first inline image part of the first candidate"""
        if not response.candidates:
            return None

        content = response.candidates[0].content
        if content is None or content.parts is None:
            return None

        for part in content.parts:
            if part.inline_data and part.inline_data.data:
                image_data = part.inline_data.data
                if isinstance(image_data, str):
                    image_data = base64.b64decode(image_data)
                return GeneratedImage(data=image_data, mime_type=part.inline_data.mime_type or "image/png")
            if part.text:
                logger.info(f"Gemini text response: {part.text[:200]}")
        return None

    async def generate(self, images: Sequence[EncodedImage], prompt: str) -> Optional[GeneratedImage]:
        """
        Generate an in-situ product placement image.

        Returns None when the model answered without an image. Any transport or
        service failure is logged and raised as GenerationFailedError.
        """
        if not self.genai_configured:
            logger.error("Generation requested but Google AI API key is not configured")
            raise GenerationFailedError(ERROR_MESSAGES["gateway"])

        start_time = time.time()
        self.usage_stats["total_requests"] += 1

        def _run_generate(contents, config):
            """Run the blocking generate_content call in a separate thread"""
            return self.genai_client.models.generate_content(model=self.model, contents=contents, config=config)

        try:
            contents = self._build_contents(images, prompt)
            config = self._build_config()
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, _run_generate, contents, config)
            result = self._extract_image(response)
        except Exception as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"Error calling Gemini API: {e}", exc_info=True)
            raise GenerationFailedError(ERROR_MESSAGES["gateway"]) from None

        processing_time = time.time() - start_time
        self.usage_stats["total_processing_time"] += processing_time

        if result is None:
            self.usage_stats["empty_responses"] += 1
            logger.warning(f"Gemini returned no image for {len(images)} input image(s) in {processing_time:.2f}s")
            return None

        self.usage_stats["successful_requests"] += 1
        logger.info(f"Generated placement image ({len(result.data)} bytes) in {processing_time:.2f}s")
        return result
