"""
HTTP client for the chat-completion and embedding endpoints.

Handles buffered and streamed completions, SSE line parsing, embeddings and
mapping transport failures onto the assistant's error types.
"""

import json
import logging
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

import requests

from config import Settings
from context import Message
from errors import (
    DecodeError,
    EmbeddingError,
    EmptyResponseError,
    RemoteError,
    RemoteTimeoutError,
    StreamInterruptedError,
)

logger = logging.getLogger(__name__)

COMPLETIONS_PATH = "/v1/chat/completions"
EMBEDDINGS_PATH = "/v1/embeddings"

TOP_P = 0.96
FREQUENCY_PENALTY = 0.3
PRESENCE_PENALTY = 0.0

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

# Longest response body quoted back in a RemoteError
MAX_ERROR_BODY = 500

FragmentCallback = Callable[[str], None]


def parse_stream_line(line) -> Optional[str]:
    """Return the text fragment carried by one SSE line.

    None means "not a content line" (comments, blank lines, malformed JSON,
    chunks without choices). DONE_SENTINEL is returned as-is so the caller
    can stop reading.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):].strip()
    if data == DONE_SENTINEL:
        return DONE_SENTINEL
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed stream line: %s", data[:80])
        return None
    if not isinstance(chunk, dict):
        return None
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    if not isinstance(content, str):
        return None
    return content


def iter_stream_fragments(lines: Iterable) -> Iterator[str]:
    """Yield non-empty text fragments until the DONE sentinel or end of input."""
    for line in lines:
        if not line:
            continue
        fragment = parse_stream_line(line)
        if fragment is None:
            continue
        if fragment == DONE_SENTINEL:
            return
        if fragment:
            yield fragment


def _error_body(response) -> str:
    try:
        return (response.text or "")[:MAX_ERROR_BODY]
    except Exception:
        return ""


class LLMClient:
    """One instance per process; all endpoint details come from Settings."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
        }

    def _post(self, path: str, payload: dict, stream: bool = False):
        url = f"{self.settings.api_base}{path}"
        try:
            response = requests.post(
                url,
                json=payload,
                headers=self._headers(),
                stream=stream,
                timeout=self.settings.request_timeout,
            )
        except requests.exceptions.Timeout as e:
            raise RemoteTimeoutError(f"Request to {path} timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"Request to {path} failed: {e}") from e

        if response.status_code != 200:
            body = _error_body(response)
            response.close()
            raise RemoteError(
                f"{path} returned {response.status_code} {response.reason or ''}".rstrip(),
                status=response.status_code,
                body=body,
            )
        return response

    def complete(
        self,
        model: str,
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: int,
        messages: Sequence[Message],
        stream: bool = False,
        on_fragment: Optional[FragmentCallback] = None,
    ) -> str:
        """Run one chat completion and return its full text.

        A non-empty system_prompt is sent as a leading system message ahead of
        messages. In streaming mode each fragment is passed to on_fragment as
        it arrives.
        """
        outgoing = list(messages)
        if system_prompt:
            outgoing.insert(0, Message("system", system_prompt))

        payload = {
            "model": model,
            "messages": [m.to_dict() for m in outgoing],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": TOP_P,
            "frequency_penalty": FREQUENCY_PENALTY,
            "presence_penalty": PRESENCE_PENALTY,
            "stream": stream,
        }

        response = self._post(COMPLETIONS_PATH, payload, stream=stream)
        try:
            if stream:
                return self._read_stream(response, on_fragment)
            return self._read_buffered(response)
        finally:
            response.close()

    def _read_buffered(self, response) -> str:
        try:
            body = response.json()
        except ValueError as e:
            raise DecodeError(f"Completion body is not JSON: {e}") from e
        if not isinstance(body, dict) or not isinstance(body.get("choices"), list):
            raise DecodeError("Completion body has no choices list")
        choices = body["choices"]
        if not choices:
            raise EmptyResponseError("Completion returned zero choices")
        try:
            content = choices[0]["message"]["content"]
        except (KeyError, TypeError) as e:
            raise DecodeError(f"Completion choice has no message content: {e}") from e
        if content is None:
            return ""
        if not isinstance(content, str):
            raise DecodeError("Completion content is not text")
        return content

    def _read_stream(self, response, on_fragment: Optional[FragmentCallback]) -> str:
        parts: List[str] = []
        try:
            for fragment in iter_stream_fragments(response.iter_lines()):
                parts.append(fragment)
                if on_fragment:
                    on_fragment(fragment)
        except requests.exceptions.RequestException as e:
            partial = "".join(parts)
            if partial:
                raise StreamInterruptedError(f"Stream interrupted: {e}", partial=partial) from e
            if isinstance(e, requests.exceptions.Timeout):
                raise RemoteTimeoutError(f"Stream timed out: {e}") from e
            raise RemoteError(f"Stream failed before any text arrived: {e}") from e
        return "".join(parts)

    def embed(self, text: str) -> List[float]:
        """Embedding vector for text. Any failure is raised as EmbeddingError."""
        payload = {"model": self.settings.embedding_model, "input": text}
        try:
            response = self._post(EMBEDDINGS_PATH, payload)
        except RemoteError as e:
            raise EmbeddingError(str(e)) from e

        try:
            body = response.json()
        except ValueError as e:
            raise EmbeddingError(f"Embedding body is not JSON: {e}") from e
        finally:
            response.close()

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list) or not data:
            raise EmbeddingError("no embeddings returned")
        vector = data[0].get("embedding") if isinstance(data[0], dict) else None
        if not isinstance(vector, list) or not vector:
            raise EmbeddingError("embedding missing from response")
        try:
            return [float(x) for x in vector]
        except (TypeError, ValueError) as e:
            raise EmbeddingError(f"embedding is not numeric: {e}") from e
