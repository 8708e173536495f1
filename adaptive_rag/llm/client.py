# adaptive_rag/llm/client.py
import os
from typing import Optional

from openai import OpenAI

from adaptive_rag.config import LLM_MODEL, LLM_TEMPERATURE
from adaptive_rag.prompts.system_prompts import DOCUMENT_QA_SYSTEM_PROMPT


class LLMClient:
    """
    Client for OpenAI LLM API.

    The token budget is set per call so each strategy's max_tokens is honoured.
    """

    def __init__(self, model: str = LLM_MODEL, client: Optional[OpenAI] = None):
        """
        Initialize OpenAI client.

        Args:
            model: OpenAI model to use (default: gpt-4o-mini)
            client: Pre-built client, mainly for tests
        """
        if client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError(
                    "OPENAI_API_KEY environment variable not set. "
                    "Please set it before running the application."
                )
            client = OpenAI(api_key=api_key)

        self.client = client
        self.model = model

    def generate(self, prompt: str, max_tokens: int = 500) -> str:
        """
        Generate text using OpenAI API.

        Args:
            prompt: Input prompt for the model
            max_tokens: Response token budget

        Returns:
            Generated text response

        Raises:
            RuntimeError: If API call fails
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": DOCUMENT_QA_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=LLM_TEMPERATURE,
                max_tokens=max_tokens,
            )

            return response.choices[0].message.content or ""

        except Exception as e:
            raise RuntimeError(f"OpenAI API call failed: {e}") from e
