"""AI reply elaboration through an OpenAI-compatible chat completions endpoint."""

from typing import Optional

import httpx

from feedhub.errors import UpstreamUnavailable, ValidationError
from feedhub.observability import get_logger

logger = get_logger("feedhub.replies")

PROMPT_TEMPLATE = (
    'Transform the short phrase "{prompt}" into a longer, more detailed and engaging reply that '
    "demonstrates a formal tone.  Do *not* simply provide feedback or thank the author. Elaborate, "
    "expand, and rephrase the text into a new reply that still captures the text in less than 15 words. "
    "Respond in a formal tone. Be concise and avoid extra details"
)


class ReplyGenerator:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def generate(self, prompt: str) -> str:
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationError("prompt is required")
        if not self._api_key:
            raise UpstreamUnavailable("reply generation is not configured")
        body = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": "You are a helpful assistant."},
                {"role": "user", "content": PROMPT_TEMPLATE.format(prompt=prompt)},
            ],
            "temperature": 0.7,
            "max_tokens": 150,
        }
        try:
            resp = await self._client.post(
                "/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            resp.raise_for_status()
            return resp.json()["choices"][0]["message"]["content"]
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            logger.error("reply_generation_failed", extra={"error": str(e)})
            raise UpstreamUnavailable("error generating AI reply") from e

    async def aclose(self) -> None:
        await self._client.aclose()
