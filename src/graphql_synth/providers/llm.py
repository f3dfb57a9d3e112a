"""Language model providers.

Completions go through LiteLLM, so any provider it supports can be selected
with a prefixed model name (``openai/gpt-4o-mini``, ``azure/<deployment>``,
``anthropic/claude-3-5-haiku-latest``, ``ollama/llama3``).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from litellm import acompletion
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from graphql_synth.config import LLMSettings
from graphql_synth.models.chat import ChatMessage, CompletionOptions
from graphql_synth.utils.errors import LLMError
from graphql_synth.utils.logging import get_logger

logger = get_logger("llm_provider")


class LLMProvider(ABC):
    """Chat completion over role-tagged messages."""

    async def initialize(self) -> None:
        return None

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier."""

    @abstractmethod
    async def complete(
        self, messages: List[ChatMessage], options: Optional[CompletionOptions] = None
    ) -> str:
        """Return the text of a single completion."""

    async def dispose(self) -> None:
        return None


class LiteLLMProvider(LLMProvider):
    """LLM provider backed by ``litellm.acompletion`` (non-streaming)."""

    def __init__(self, settings: LLMSettings, model: Optional[str] = None):
        self.settings = settings
        self._model = model or settings.default_model_name

    @property
    def name(self) -> str:
        return "litellm"

    @property
    def model(self) -> str:
        return self._model

    async def initialize(self) -> None:
        self._validate_model_configuration(self._model)
        logger.info(f"LLM provider ready: model={self._model}")

    def _validate_model_configuration(self, model: str) -> None:
        """Validate that the required API keys are configured for the model.

        Raises:
            LLMError: If required API keys are not configured.
        """
        if model.startswith("azure/"):
            if not self.settings.has_azure_openai:
                raise LLMError(
                    message=f"Azure OpenAI API key or base URL not configured for model {model}",
                    model=model,
                    details={"required": ["AZURE_API_KEY", "AZURE_API_BASE"]},
                )
        elif model.startswith("anthropic/"):
            if not self.settings.has_anthropic:
                raise LLMError(
                    message=f"Anthropic API key not configured for model {model}",
                    model=model,
                    details={"required": ["ANTHROPIC_API_KEY"]},
                )
        elif model.startswith("ollama/"):
            if not self.settings.has_ollama:
                raise LLMError(
                    message=f"Ollama base URL not configured for model {model}",
                    model=model,
                    details={"required": ["OLLAMA_API_BASE"]},
                )
        elif model.startswith("openai/") or "/" not in model:
            if not self.settings.has_openai:
                raise LLMError(
                    message=f"OpenAI API key not configured for model {model}",
                    model=model,
                    details={"required": ["OPENAI_API_KEY"]},
                )

    def _credentials(self, model: str) -> Dict[str, Any]:
        """Per-call credentials for LiteLLM, derived from the model prefix."""
        if model.startswith("azure/"):
            return {
                "api_key": self.settings.azure_api_key,
                "api_base": self.settings.azure_api_base,
                "api_version": self.settings.azure_api_version,
            }
        if model.startswith("anthropic/"):
            return {"api_key": self.settings.anthropic_api_key}
        if model.startswith("ollama/"):
            return {"api_base": self.settings.ollama_api_base}
        return {"api_key": self.settings.openai_api_key}

    async def _call_llm(self, params: Dict[str, Any]) -> Any:
        try:
            return await acompletion(**params)
        except Exception as e:
            raise LLMError(
                message=f"LLM call failed: {str(e)}",
                model=params.get("model"),
                details={"error_type": type(e).__name__},
            ) from e

    async def complete(
        self, messages: List[ChatMessage], options: Optional[CompletionOptions] = None
    ) -> str:
        """Run one completion with retries on transient provider failures.

        Raises:
            LLMError: If the model is not configured or every attempt fails.
        """
        options = options or CompletionOptions()
        self._validate_model_configuration(self._model)

        params: Dict[str, Any] = {
            "model": self._model,
            "messages": [m.to_litellm() for m in messages],
            "stream": False,
            "timeout": self.settings.llm_timeout,
            **{k: v for k, v in self._credentials(self._model).items() if v},
        }
        if options.temperature is not None:
            params["temperature"] = options.temperature
        if options.max_tokens:
            params["max_tokens"] = options.max_tokens

        logger.debug(f"Calling LLM model: {self._model}, messages={len(messages)}")
        async for attempt in AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.settings.llm_max_retries)),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(LLMError),
        ):
            with attempt:
                response = await self._call_llm(params)

        return self._extract_content(response)

    def _extract_content(self, response: Any) -> str:
        """Pull the assistant text out of a non-streaming LiteLLM response."""
        try:
            content = response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            try:
                content = response.choices[0].message.content
            except (AttributeError, IndexError) as e:
                raise LLMError(
                    "LLM response had no message content", model=self._model
                ) from e
        return content or ""
