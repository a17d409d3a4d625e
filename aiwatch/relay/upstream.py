import json
from typing import Any, AsyncIterator

import httpx
import structlog

from aiwatch.errors import UnreachableBackend, UpstreamStreamError

logger = structlog.get_logger()

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"


def _delta_content(chunk: dict[str, Any]) -> str:
    choices = chunk.get("choices") or []
    if not choices:
        return ""
    delta = choices[0].get("delta") or {}
    return delta.get("content") or ""


class InferenceClient:
    """Streaming client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float | None = 90.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    async def stream_chat(
        self, model: str, messages: list[dict[str, str]]
    ) -> AsyncIterator[str]:
        payload = {"model": model, "messages": messages, "stream": True}
        url = f"{self.base_url}/chat/completions"
        try:
            async with self.client.stream(
                "POST", url, json=payload, headers=self.headers
            ) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    logger.error(
                        "Inference backend rejected chat request",
                        status=response.status_code,
                        body=body[:500].decode("utf-8", errors="replace"),
                    )
                    raise UpstreamStreamError(
                        f"inference backend returned {response.status_code}"
                    )

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith(DATA_PREFIX):
                        continue
                    data = line[len(DATA_PREFIX):].strip()
                    if data == DONE_MARKER:
                        return
                    try:
                        chunk = json.loads(data)
                    except ValueError:
                        logger.warning("Skipping undecodable stream event", data=data[:100])
                        continue
                    if not isinstance(chunk, dict):
                        continue
                    if chunk.get("error"):
                        raise UpstreamStreamError(f"inference backend error: {chunk['error']}")
                    yield _delta_content(chunk)
        except httpx.ConnectError as e:
            logger.error("Inference backend unreachable", url=url, error=str(e))
            raise UnreachableBackend(str(e)) from e
        except httpx.HTTPError as e:
            logger.error("Inference stream failed", url=url, error=str(e))
            raise UpstreamStreamError(str(e)) from e

    async def aclose(self) -> None:
        await self.client.aclose()
