import asyncio
import json
import re
import time
import os
import logging
from typing import TypeVar, Type
from pydantic import BaseModel
from openai import OpenAI
from dotenv import load_dotenv

from dealdesk.models.research import LLMCallLog

load_dotenv()
logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def strip_code_fence(content: str) -> str:
    """Unwrap a ```json fenced block; anything else is returned trimmed."""
    content = content.strip()
    match = _CODE_FENCE.match(content)
    return match.group(1) if match else content


class LLMService:
    def __init__(self):
        self.client = OpenAI(
            api_key=os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
        )
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.call_logs: list[LLMCallLog] = []

    async def structured_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[T],
        step_name: str,
        max_retries: int = 2,
    ) -> T:
        """Call OpenAI with JSON mode and parse response into a Pydantic model."""
        return await asyncio.to_thread(
            self._structured_completion_sync,
            system_prompt, user_prompt, response_model, step_name, max_retries,
        )

    def _structured_completion_sync(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[T],
        step_name: str,
        max_retries: int,
    ) -> T:
        schema = response_model.model_json_schema()
        full_system = (
            f"{system_prompt}\n\n"
            f"Respond with valid JSON matching this schema:\n{json.dumps(schema, indent=2)}"
        )

        last_error = None
        for attempt in range(max_retries + 1):
            start = time.time()
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    temperature=0.0,
                    response_format={"type": "json_object"},
                    messages=[
                        {"role": "system", "content": full_system},
                        {"role": "user", "content": user_prompt},
                    ],
                )
                duration_ms = (time.time() - start) * 1000
                content = response.choices[0].message.content or ""
                tokens = response.usage.total_tokens if response.usage else None

                logger.info(
                    f"LLM structured call [{step_name}]: model={self.model}, "
                    f"tokens={tokens}, duration={duration_ms:.0f}ms"
                )
                logger.info(f"LLM [{step_name}] response: {content[:500]}...")

                self.call_logs.append(LLMCallLog(
                    step_name=step_name,
                    model=self.model,
                    system_prompt=full_system,
                    user_prompt=user_prompt,
                    response=content,
                    tokens_used=tokens,
                    duration_ms=duration_ms,
                ))

                return response_model.model_validate_json(strip_code_fence(content))

            except Exception as e:
                last_error = e
                logger.warning(f"LLM call attempt {attempt + 1} failed for [{step_name}]: {e}")

        raise RuntimeError(f"LLM call failed after {max_retries + 1} attempts: {last_error}")
