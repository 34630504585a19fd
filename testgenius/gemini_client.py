from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from testgenius.config import (
    GEMINI_API_KEY,
    GEMINI_BASE_URL,
    GEMINI_MODEL,
    GEMINI_TIMEOUT_SECONDS,
)
from testgenius.errors import AIServiceError

log = logging.getLogger(__name__)


def _error_detail(response: requests.Response | None) -> str:
    if response is None:
        return "no response"
    try:
        data = response.json()
        message = data.get("error", {}).get("message")
        if message:
            return f"{response.status_code} {message}"
    except ValueError:
        pass
    return f"{response.status_code} {response.reason}"


def extract_text(data: Dict[str, Any], *, allow_empty: bool = False) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = data.get("candidates") or []
    if not candidates:
        if allow_empty:
            return ""
        reason = (data.get("promptFeedback") or {}).get("blockReason")
        if reason:
            raise AIServiceError(f"Request was blocked by the AI service ({reason})")
        raise AIServiceError(f"Unexpected Gemini response: {json.dumps(data)[:500]}")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    # thought parts are internal reasoning, not answer text
    texts = [p.get("text", "") for p in parts if isinstance(p, dict) and not p.get("thought")]
    text = "".join(texts)
    if not text and not allow_empty:
        raise AIServiceError("The AI service returned an empty response")
    return text


def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


def inline_data_part(base64_data: str, mime_type: str) -> Dict[str, Any]:
    return {"inlineData": {"mimeType": mime_type, "data": base64_data}}


class GeminiClient:
    """Thin wrapper over the Gemini ``generateContent`` REST endpoints."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key or GEMINI_API_KEY
        if not self.api_key:
            raise AIServiceError("GEMINI_API_KEY environment variable not set. Please configure it.")
        self.model = model or GEMINI_MODEL
        self.base_url = (base_url or GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout or GEMINI_TIMEOUT_SECONDS
        self._session = session or requests.Session()
        self._session.headers.update(
            {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        )

    def _url(self, method: str) -> str:
        return f"{self.base_url}/models/{self.model}:{method}"

    @staticmethod
    def _payload(
        contents: List[Dict[str, Any]],
        *,
        temperature: Optional[float],
        response_mime_type: Optional[str],
        system_instruction: Optional[str],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"contents": contents}
        generation_config: Dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if response_mime_type:
            generation_config["responseMimeType"] = response_mime_type
        if generation_config:
            payload["generationConfig"] = generation_config
        if system_instruction:
            payload["systemInstruction"] = {"parts": [text_part(system_instruction)]}
        return payload

    def generate(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        response_mime_type: Optional[str] = None,
    ) -> str:
        contents = [{"role": "user", "parts": [text_part(prompt)]}]
        return self.generate_contents(
            contents, temperature=temperature, response_mime_type=response_mime_type
        )

    def generate_multimodal(
        self,
        parts: List[Dict[str, Any]],
        *,
        temperature: Optional[float] = None,
    ) -> str:
        contents = [{"role": "user", "parts": parts}]
        return self.generate_contents(contents, temperature=temperature)

    def generate_contents(
        self,
        contents: List[Dict[str, Any]],
        *,
        temperature: Optional[float] = None,
        response_mime_type: Optional[str] = None,
        system_instruction: Optional[str] = None,
    ) -> str:
        payload = self._payload(
            contents,
            temperature=temperature,
            response_mime_type=response_mime_type,
            system_instruction=system_instruction,
        )
        try:
            r = self._session.post(self._url("generateContent"), json=payload, timeout=self.timeout)
            r.raise_for_status()
        except requests.HTTPError as http_err:
            response = http_err.response
            raise AIServiceError(
                _error_detail(response),
                status_code=response.status_code if response is not None else None,
            ) from http_err
        except requests.RequestException as net_err:
            raise AIServiceError(f"Could not reach the AI service: {net_err}") from net_err
        try:
            data = r.json()
        except ValueError as exc:
            raise AIServiceError(f"Unexpected Gemini response: {r.text[:500]}") from exc
        return extract_text(data)

    def stream_contents(
        self,
        contents: List[Dict[str, Any]],
        *,
        temperature: Optional[float] = None,
        system_instruction: Optional[str] = None,
    ) -> Iterator[str]:
        """Yield response text chunks from the server-sent event stream."""
        payload = self._payload(
            contents,
            temperature=temperature,
            response_mime_type=None,
            system_instruction=system_instruction,
        )
        try:
            r = self._session.post(
                self._url("streamGenerateContent"),
                params={"alt": "sse"},
                json=payload,
                timeout=self.timeout,
                stream=True,
            )
            r.raise_for_status()
        except requests.HTTPError as http_err:
            response = http_err.response
            raise AIServiceError(
                _error_detail(response),
                status_code=response.status_code if response is not None else None,
            ) from http_err
        except requests.RequestException as net_err:
            raise AIServiceError(f"Could not reach the AI service: {net_err}") from net_err

        try:
            for line in r.iter_lines(decode_unicode=True):
                if not line or not line.startswith("data:"):
                    continue
                raw = line[len("data:"):].strip()
                try:
                    event = json.loads(raw)
                except ValueError:
                    log.warning("Skipping malformed stream chunk: %s", raw[:200])
                    continue
                chunk = extract_text(event, allow_empty=True)
                if chunk:
                    yield chunk
        except requests.RequestException as net_err:
            raise AIServiceError(f"AI response stream was interrupted: {net_err}") from net_err
        finally:
            r.close()

    def close(self) -> None:
        self._session.close()
