"""HTTP client for the OpenAI-compatible chat endpoint used by reviewers."""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from order_intake.core.exceptions import APIClientError, APITimeoutError
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ChatCompletionClient:
    """Posts chat completions for one model, retrying 429/5xx and timeouts.

    4xx responses other than 429 fail immediately with :class:`APIClientError`;
    the last timeout becomes :class:`APITimeoutError`.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        url: str,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_delay: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport

    async def complete(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.0,
        json_mode: bool = True,
    ) -> str:
        """Return the assistant message text ("" when the model sends nothing)."""
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        payload: Dict[str, Any] = {"model": self.model, "messages": messages, "temperature": temperature}
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        response = await self._post(payload)
        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected chat completion response: {response}", extra={"model": self.model})
            raise APIClientError(f"Model {self.model} returned no choices")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty completion", extra={"model": self.model})
        return content

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(1, self.max_retries + 1):
                last = attempt == self.max_retries
                try:
                    response = await client.post(self.url, headers=headers, json=payload)
                except httpx.TimeoutException as e:
                    LOGGER.warning(f"Chat completion timed out (attempt {attempt}/{self.max_retries})", extra={"model": self.model})
                    if last:
                        raise APITimeoutError(f"Model {self.model} timed out after {attempt} attempts", original_error=e)
                except httpx.HTTPError as e:
                    LOGGER.warning(f"Chat completion failed (attempt {attempt}/{self.max_retries}): {e}", extra={"model": self.model})
                    if last:
                        raise APIClientError(f"Model {self.model} unreachable: {e}", original_error=e)
                else:
                    status_code = response.status_code
                    if status_code < 400:
                        return response.json()

                    LOGGER.warning(
                        f"Chat completion HTTP {status_code} (attempt {attempt}/{self.max_retries})",
                        extra={"model": self.model, "error_body": response.text[:500]},
                    )
                    if status_code < 500 and status_code != 429:
                        raise APIClientError(f"Model {self.model} rejected the request ({status_code}): {response.text}")
                    if last:
                        raise APIClientError(f"Model {self.model} returned {status_code} after {attempt} attempts")

                await asyncio.sleep(self.retry_delay * (2 ** (attempt - 1)))

        raise APIClientError(f"Model {self.model}: no attempts made")
