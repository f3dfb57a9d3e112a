"""Unit tests for the LiteLLM provider."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from tenacity import wait_none

from graphql_synth.config import LLMSettings
from graphql_synth.models.chat import ChatMessage, CompletionOptions
from graphql_synth.providers.llm import LiteLLMProvider
from graphql_synth.utils.errors import LLMError


@pytest.fixture
def llm_settings():
    return LLMSettings(
        default_model_name="openai/gpt-4o-mini",
        openai_api_key="sk-test",
        azure_api_key=None,
        azure_api_base=None,
        anthropic_api_key=None,
        ollama_api_base=None,
        llm_max_retries=3,
    )


@pytest.fixture
def provider(llm_settings):
    return LiteLLMProvider(llm_settings)


@pytest.fixture
def messages():
    return [ChatMessage.system("Be terse."), ChatMessage.user("Which root field?")]


def litellm_response(content):
    return {"choices": [{"message": {"content": content}}], "model": "openai/gpt-4o-mini"}


class TestModelValidation:
    """Model prefix to required credentials."""

    def test_openai_configured(self, provider):
        provider._validate_model_configuration("openai/gpt-4o-mini")

    def test_azure_without_config(self, provider):
        with pytest.raises(LLMError) as exc_info:
            provider._validate_model_configuration("azure/gpt-4o")
        assert "Azure OpenAI" in exc_info.value.message

    def test_anthropic_without_config(self, provider):
        with pytest.raises(LLMError) as exc_info:
            provider._validate_model_configuration("anthropic/claude-3-haiku")
        assert "Anthropic" in exc_info.value.message

    def test_ollama_with_config(self, llm_settings):
        llm_settings.ollama_api_base = "http://localhost:11434"
        LiteLLMProvider(llm_settings)._validate_model_configuration("ollama/llama3")

    @pytest.mark.asyncio
    async def test_initialize_checks_default_model(self, llm_settings):
        llm_settings.openai_api_key = None
        with pytest.raises(LLMError):
            await LiteLLMProvider(llm_settings).initialize()


class TestComplete:
    """Completion calls."""

    @pytest.mark.asyncio
    async def test_passes_options_and_credentials(self, provider, messages):
        with patch(
            "graphql_synth.providers.llm.acompletion", new_callable=AsyncMock
        ) as mock_completion:
            mock_completion.return_value = litellm_response("Query")

            result = await provider.complete(
                messages, CompletionOptions(temperature=0.1, max_tokens=50)
            )

        assert result == "Query"
        kwargs = mock_completion.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o-mini"
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 50
        assert kwargs["stream"] is False
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["messages"][1] == {"role": "user", "content": "Which root field?"}

    @pytest.mark.asyncio
    async def test_object_style_response(self, provider, messages):
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Mutation"))]
        )
        with patch(
            "graphql_synth.providers.llm.acompletion",
            new_callable=AsyncMock,
            return_value=response,
        ):
            assert await provider.complete(messages) == "Mutation"

    @pytest.mark.asyncio
    async def test_empty_content(self, provider, messages):
        with patch(
            "graphql_synth.providers.llm.acompletion",
            new_callable=AsyncMock,
            return_value=litellm_response(None),
        ):
            assert await provider.complete(messages) == ""

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, provider, messages):
        with patch(
            "graphql_synth.providers.llm.wait_exponential", return_value=wait_none()
        ), patch(
            "graphql_synth.providers.llm.acompletion", new_callable=AsyncMock
        ) as mock_completion:
            mock_completion.side_effect = [
                RuntimeError("rate limited"),
                litellm_response("Subscription"),
            ]

            result = await provider.complete(messages)

        assert result == "Subscription"
        assert mock_completion.call_count == 2

    @pytest.mark.asyncio
    async def test_raises_after_retries(self, provider, messages):
        with patch(
            "graphql_synth.providers.llm.wait_exponential", return_value=wait_none()
        ), patch(
            "graphql_synth.providers.llm.acompletion",
            new_callable=AsyncMock,
            side_effect=RuntimeError("API Error"),
        ) as mock_completion:
            with pytest.raises(LLMError) as exc_info:
                await provider.complete(messages)

        assert "API Error" in exc_info.value.message
        assert mock_completion.call_count == 3
