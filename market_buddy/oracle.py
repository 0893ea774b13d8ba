from __future__ import annotations

import json
import logging
import re
from typing import Any

import requests

from .errors import OracleResponseMalformed, OracleUnavailable
from .http import HttpClient
from .models import OracleVerdict

logger = logging.getLogger(__name__)

SELECTION_SYSTEM_PROMPT = (
    "You are a grocery shopping assistant that helps match grocery items to products in a database. "
    "You will receive a grocery item and a list of candidate products. "
    "Select the best matching product and explain your reasoning."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL | re.IGNORECASE)


def unwrap_code_fence(text: str) -> str:
    """Return the body of the first ``` fenced block, or the text itself."""
    m = _FENCE_RE.search(text)
    return (m.group(1) if m else text).strip()


def decode_json_object(text: str | None) -> dict[str, Any]:
    if not text or not text.strip():
        raise OracleResponseMalformed("empty oracle response")
    body = unwrap_code_fence(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        # Chatty answers: fall back to the outermost {...} block.
        start, end = body.find("{"), body.rfind("}")
        if start == -1 or end <= start:
            raise OracleResponseMalformed(f"oracle response is not JSON: {text[:200]!r}")
        try:
            data = json.loads(body[start : end + 1])
        except json.JSONDecodeError as e:
            raise OracleResponseMalformed(f"oracle response is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise OracleResponseMalformed(f"expected a JSON object, got {type(data).__name__}")
    return data


def _is_number(val: Any) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool)


def parse_verdict(raw: str) -> OracleVerdict:
    """Validate a selection answer: ``selectedIndices`` (or legacy ``selectedIndex``),
    ``confidence`` and ``reasoning``."""
    data = decode_json_object(raw)

    if "selectedIndices" in data:
        raw_indices = data["selectedIndices"]
        if raw_indices is None:
            raw_indices = []
        if not isinstance(raw_indices, list) or not all(_is_number(i) for i in raw_indices):
            raise OracleResponseMalformed(f"selectedIndices must be a list of numbers: {raw_indices!r}")
        indices = tuple(int(i) for i in raw_indices)
    elif "selectedIndex" in data:
        idx = data["selectedIndex"]
        if idx is None:
            idx = 0
        if not _is_number(idx):
            raise OracleResponseMalformed(f"selectedIndex must be a number: {idx!r}")
        # 0 means "none of the candidates".
        indices = (int(idx),) if int(idx) > 0 else ()
    else:
        raise OracleResponseMalformed("oracle response has no selectedIndices/selectedIndex")

    confidence = data.get("confidence")
    if not _is_number(confidence):
        raise OracleResponseMalformed(f"confidence must be a number: {confidence!r}")

    reasoning = data.get("reasoning") or ""
    return OracleVerdict(
        selected_indices=indices,
        confidence=max(0.0, min(float(confidence), 1.0)),
        reasoning=str(reasoning),
    )


class AzureOpenAIClient:
    """Chat-completions client for both oracles (list parsing and selection)."""

    def __init__(
        self,
        *,
        endpoint: str,
        api_key: str,
        deployment: str,
        api_version: str = "2023-05-15",
        timeout_s: float = 20.0,
    ):
        self.http = HttpClient(
            base_url=endpoint,
            headers={"api-key": api_key, "Content-Type": "application/json"},
            timeout_s=timeout_s,
        )
        self.deployment = deployment
        self.api_version = api_version

    @staticmethod
    def from_config(cfg) -> "AzureOpenAIClient":
        return AzureOpenAIClient(
            endpoint=cfg.azure_openai_endpoint,
            api_key=cfg.azure_openai_key,
            deployment=cfg.azure_openai_deployment,
            api_version=cfg.azure_openai_api_version,
            timeout_s=cfg.oracle_timeout_s,
        )

    def chat(self, system: str, user: str, *, temperature: float = 0.2, max_tokens: int = 500) -> str:
        path = f"/openai/deployments/{self.deployment}/chat/completions"
        body = {
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": 0.95,
            "frequency_penalty": 0,
            "presence_penalty": 0,
        }
        try:
            resp = self.http.post_json(path, body, params={"api-version": self.api_version})
        except requests.RequestException as e:
            raise OracleUnavailable(f"Azure OpenAI request failed: {e}") from e

        if resp.status_code >= 400:
            raise OracleUnavailable(f"Azure OpenAI error {resp.status_code}: {resp.text[:500]}")

        try:
            return resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OracleResponseMalformed(f"unexpected chat-completions body: {e}") from e

    def parse_free_text(self, message: str, instructions: str) -> str:
        return self.chat(instructions, message, temperature=0.3, max_tokens=800)

    def select_best(self, prompt: str) -> OracleVerdict:
        raw = self.chat(SELECTION_SYSTEM_PROMPT, prompt, temperature=0.2, max_tokens=500)
        logger.debug("selection oracle answered: %s", raw)
        return parse_verdict(raw)
