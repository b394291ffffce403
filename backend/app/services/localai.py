from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..core.errors import (
    UpstreamBadRequestError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamModelNotFoundError,
    UpstreamServerError,
    UpstreamUnavailableError,
    UpstreamUnknownError,
)
from ..schemas import ChatRequest
from ..utils.timing import utc_timestamp

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data:"
_DONE_MARKER = "[DONE]"


@dataclass
class ChatCompletion:
    message: str
    model: str
    timestamp: str
    usage: Optional[Dict[str, Any]] = None


@dataclass
class StreamChunk:
    content: str
    done: bool = False


@dataclass
class EmbeddingResult:
    embedding: List[float]
    model: str
    usage: Optional[Dict[str, Any]] = None


class LocalAIService:
    """Client for an OpenAI-compatible LocalAI server."""

    def __init__(
        self,
        base_url: str,
        model: str,
        embedding_model: str = "all-MiniLM-L6-v2",
        timeout_seconds: float = 120,
        health_timeout_seconds: float = 5,
        default_temperature: float = 0.7,
        default_max_tokens: int = 512,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.embedding_model = embedding_model
        self.timeout_seconds = timeout_seconds
        self.health_timeout_seconds = health_timeout_seconds
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
                event_hooks={"request": [self._log_request], "response": [self._log_response]},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def chat(self, request: ChatRequest) -> ChatCompletion:
        payload = self._build_payload(request, stream=False)
        try:
            response = await self.client.post("/v1/chat/completions", json=payload)
            self._raise_for_status(response)
            data = response.json()
        except UpstreamError:
            raise
        except Exception as exc:
            logger.error("Error in chat completion: %s", exc)
            raise self._map_exception(exc) from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise UpstreamUnknownError("No response from LocalAI")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None

        return ChatCompletion(
            message=content if isinstance(content, str) else "",
            model=data.get("model") or self.model,
            usage=data.get("usage"),
            timestamp=utc_timestamp(),
        )

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Yield completion fragments as the server produces them.

        The upstream response is closed when the generator finishes or is
        closed early by the consumer.
        """
        payload = self._build_payload(request, stream=True)
        try:
            async with self.client.stream("POST", "/v1/chat/completions", json=payload) as response:
                if response.is_error:
                    await response.aread()
                    self._raise_for_status(response)

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith(_DATA_PREFIX):
                        continue
                    data = line[len(_DATA_PREFIX):].strip()

                    if data == _DONE_MARKER:
                        yield StreamChunk(content="", done=True)
                        return

                    content = self._parse_delta(data)
                    if content:
                        yield StreamChunk(content=content)

                logger.warning("LocalAI stream ended without a [DONE] marker")
                yield StreamChunk(content="", done=True)
        except UpstreamError:
            raise
        except httpx.HTTPError as exc:
            logger.error("Error in streaming chat: %s", exc)
            raise self._map_exception(exc) from exc

    async def generate_embedding(self, text: str, model: Optional[str] = None) -> EmbeddingResult:
        payload = {
            "model": model or self.embedding_model,
            "input": text,
        }
        try:
            response = await self.client.post("/v1/embeddings", json=payload)
            self._raise_for_status(response)
            data = response.json()
        except UpstreamError:
            raise
        except Exception as exc:
            logger.error("Error generating embedding: %s", exc)
            raise self._map_exception(exc) from exc

        items = data.get("data") if isinstance(data, dict) else None
        embedding = None
        if isinstance(items, list) and items and isinstance(items[0], dict):
            embedding = items[0].get("embedding")
        if not embedding:
            raise UpstreamUnknownError("No embedding returned from LocalAI")

        try:
            vector = [float(value) for value in embedding]
        except (TypeError, ValueError) as exc:
            raise UpstreamUnknownError(f"Invalid embedding returned from LocalAI: {exc}") from exc

        return EmbeddingResult(
            embedding=vector,
            model=data.get("model") or payload["model"],
            usage=data.get("usage"),
        )

    async def get_models(self) -> List[str]:
        try:
            response = await self.client.get("/v1/models")
            self._raise_for_status(response)
            data = response.json()
        except UpstreamError:
            raise
        except Exception as exc:
            logger.error("Error fetching models: %s", exc)
            raise self._map_exception(exc) from exc
        models = data.get("data") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [model["id"] for model in models if isinstance(model, dict) and model.get("id")]

    async def health_check(self) -> bool:
        try:
            response = await self.client.get("/readyz", timeout=self.health_timeout_seconds)
            return response.status_code == 200
        except Exception as exc:
            logger.warning("LocalAI health check failed: %s", exc)
            return False

    def _build_payload(self, request: ChatRequest, *, stream: bool) -> Dict[str, Any]:
        messages: List[Dict[str, Any]] = []
        for item in request.context or []:
            messages.append({"role": item.role, "content": item.content})
        messages.append({"role": "user", "content": request.message})

        return {
            "model": self.model,
            "messages": messages,
            "temperature": request.temperature if request.temperature is not None else self.default_temperature,
            "max_tokens": request.max_tokens if request.max_tokens is not None else self.default_max_tokens,
            "stream": stream,
        }

    @staticmethod
    def _parse_delta(data: str) -> Optional[str]:
        try:
            parsed = json.loads(data)
            choices = parsed.get("choices") or [{}]
            delta = choices[0].get("delta") or {}
            content = delta.get("content")
        except (ValueError, AttributeError, TypeError, LookupError):
            logger.warning("Failed to parse SSE data: %s", data)
            return None
        return content if isinstance(content, str) else None

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        status = response.status_code
        message = self._remote_message(response)
        logger.error("LocalAI responded with %s: %s", status, message)

        if status == 400:
            raise UpstreamBadRequestError(f"Bad request to LocalAI: {message}", status)
        if status == 404:
            raise UpstreamModelNotFoundError(f"Model not found: {self.model}", status)
        if status == 503:
            raise UpstreamUnavailableError("LocalAI service unavailable", status)
        if status >= 500:
            raise UpstreamServerError(f"LocalAI server error: {message}", status)
        raise UpstreamUnknownError(f"LocalAI error ({status}): {message}", status)

    @staticmethod
    def _remote_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
        return response.reason_phrase or response.text

    @staticmethod
    def _map_exception(exc: Exception) -> UpstreamError:
        if isinstance(exc, (httpx.TransportError, httpx.TimeoutException)):
            return UpstreamConnectionError(
                "Unable to connect to LocalAI. Please check if the service is running."
            )
        return UpstreamUnknownError(f"LocalAI service error: {exc}")

    async def _log_request(self, request: httpx.Request) -> None:
        logger.debug("LocalAI Request: %s %s", request.method, request.url)

    async def _log_response(self, response: httpx.Response) -> None:
        logger.debug("LocalAI Response: %s %s", response.status_code, response.reason_phrase)
