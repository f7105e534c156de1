"""Multi-provider chat-completion adapter with schema-constrained JSON output.

Supports OpenAI, OpenRouter, Groq (all OpenAI-compatible) and Ollama. Only
the re-ranking step talks to an LLM, so the adapter exposes a single
operation: send a system prompt and a user payload, get a parsed JSON
object back.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from .config_manager import DEFAULT_CONFIGS, LLMSettings
from .errors import AIRerankError

logger = logging.getLogger(__name__)


class LLMProvider:
    """Base class for LLM providers."""

    timeout = 60

    def __init__(self, model: str, endpoint: str, api_key: str = "") -> None:
        self.model = model
        self.endpoint = endpoint
        self.api_key = api_key

    def build_request(
        self,
        messages: List[Dict[str, str]],
        schema: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Return the JSON body for a schema-constrained completion."""
        raise NotImplementedError

    def extract_text(self, parsed: Dict[str, Any]) -> str:
        """Pull the assistant text out of a decoded response body."""
        raise NotImplementedError

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def generate_json(
        self,
        messages: List[Dict[str, str]],
        schema: Dict[str, Any],
    ) -> Dict[str, Any]:
        response = requests.post(
            self.endpoint,
            headers=self.headers(),
            json=self.build_request(messages, schema),
            timeout=self.timeout,
        )
        response.raise_for_status()
        text = self.extract_text(response.json())
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data


class OpenAIProvider(LLMProvider):
    """OpenAI chat-completions with ``response_format: json_schema``."""

    def build_request(self, messages, schema):
        return {
            "model": self.model,
            "messages": messages,
            "temperature": 0,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "ranking", "strict": True, "schema": schema},
            },
        }

    def extract_text(self, parsed):
        return parsed["choices"][0]["message"]["content"]


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter API provider (OpenAI-compatible, multi-model gateway)."""

    def headers(self) -> Dict[str, str]:
        headers = super().headers()
        headers["X-Title"] = "codefind"
        return headers


class GroqProvider(OpenAIProvider):
    """Groq cloud API; JSON mode only, the schema goes into the prompt."""

    def build_request(self, messages, schema):
        hinted = list(messages)
        hinted.append({
            "role": "system",
            "content": "Answer with JSON matching this schema:\n" + json.dumps(schema),
        })
        return {
            "model": self.model,
            "messages": hinted,
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }


class OllamaProvider(LLMProvider):
    """Ollama local ``/api/chat`` with a JSON schema in ``format``."""

    timeout = 120

    def build_request(self, messages, schema):
        return {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "format": schema,
            "options": {"temperature": 0},
        }

    def extract_text(self, parsed):
        return parsed["message"]["content"]


_PROVIDERS = {
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
    "groq": GroqProvider,
    "ollama": OllamaProvider,
}


class StructuredLLM:
    """Provider manager returning schema-constrained JSON answers."""

    def __init__(self, settings: Optional[LLMSettings] = None) -> None:
        settings = settings or LLMSettings()
        self.provider_name = settings.provider.lower()
        defaults = DEFAULT_CONFIGS.get(self.provider_name, DEFAULT_CONFIGS["openai"])
        self.model = settings.model or defaults["model"]
        self.endpoint = settings.endpoint or defaults["endpoint"]
        self.api_key = settings.api_key
        self.provider = self._create_provider()

    def _create_provider(self) -> LLMProvider:
        provider_cls = _PROVIDERS.get(self.provider_name, OpenAIProvider)
        return provider_cls(self.model, self.endpoint, self.api_key)

    def complete_json(
        self,
        system_prompt: str,
        user_content: str,
        schema: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Run one completion and return the decoded JSON object.

        Raises:
            AIRerankError: On missing credentials, transport or HTTP
                failures, and on responses that are not a JSON object.
        """
        if self.provider_name != "ollama" and not self.api_key:
            raise AIRerankError(
                f"No API key configured for LLM provider '{self.provider_name}'. "
                "Run 'cf set-llm' or set CODEFIND_LLM_API_KEY."
            )
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ]
        try:
            return self.provider.generate_json(messages, schema)
        except requests.RequestException as exc:
            raise AIRerankError(f"{self.provider_name} request failed: {exc}") from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise AIRerankError(f"{self.provider_name} returned an unusable response: {exc}") from exc
