import logging
from typing import Optional, Type, TypeVar
from datetime import datetime, timezone
from pydantic import BaseModel
from google import genai
from google.genai import types

from ..settings import settings

logger = logging.getLogger("recipefinder.ai")

T = TypeVar("T", bound=BaseModel)


class AIClient:
    _instance = None

    def __init__(self):
        self.api_key = settings.gemini_api_key
        self.mode = settings.ai_mode  # "mock" or "gemini"
        self._client: Optional[genai.Client] = None
        self.last_error: Optional[str] = None
        self.last_error_at: Optional[datetime] = None
        self.quota_exceeded: bool = False

        if self.mode == "gemini" and self.api_key:
            self._client = genai.Client(api_key=self.api_key)

    @classmethod
    def get_instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def is_available(self) -> bool:
        return self.mode == "gemini" and self._client is not None

    async def generate_structured(
        self,
        prompt: str,
        response_model: Type[T],
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: float = 0.8,
    ) -> tuple[Optional[T], int]:
        """
        Generate structured JSON output using Gemini (Async).
        Returns (parsed, total_tokens). Raises if the call itself fails.
        """
        if not self.is_available():
            logger.warning("AI is not available (mode=%s), skipping generation", self.mode)
            return None, 0

        model_id = model or settings.gemini_text_model

        try:
            config = types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=response_model,
                system_instruction=system_instruction,
                temperature=temperature,
            )

            response = await self._client.aio.models.generate_content(
                model=model_id,
                contents=prompt,
                config=config
            )
        except Exception as e:
            self.last_error = f"{e.__class__.__name__}: {str(e)}"
            self.last_error_at = datetime.now(timezone.utc)
            logger.error(f"Gemini generation failed: {e}")

            # Check for quota limits / 429
            if "429" in str(e) or "quota" in str(e).lower():
                self.quota_exceeded = True
            raise

        tokens = 0
        usage = getattr(response, "usage_metadata", None)
        if usage is not None and usage.total_token_count:
            tokens = int(usage.total_token_count)

        if not response.text:
            logger.warning("Gemini returned empty response")
            return None, tokens

        # SDK parses into response_model when response_schema is set
        return response.parsed, tokens


# Singleton instance access
ai_client = AIClient.get_instance()
