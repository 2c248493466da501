from types import SimpleNamespace
from unittest.mock import MagicMock

from app.core.llm.providers.groq import GROQ_BASE_URL, GroqProvider
from app.core.llm.providers.openai import OpenAIProvider
from app.core.llm.schemas import GenerateConfig


def test_build_params_omits_none_optionals():
    provider = OpenAIProvider(api_key="test", model="gpt-4o-mini")

    params = provider._build_params(
        messages=[{"role": "user", "content": "hello"}],
        config=GenerateConfig(max_tokens=None, stop=None),
    )

    assert params["model"] == "gpt-4o-mini"
    assert "max_tokens" not in params
    assert "stop" not in params


def test_build_params_includes_optional_values_when_provided():
    provider = OpenAIProvider(api_key="test", model="gpt-4o-mini")

    params = provider._build_params(
        messages=[{"role": "user", "content": "hello"}],
        config=GenerateConfig(max_tokens=128, stop=["DONE"]),
    )

    assert params["max_tokens"] == 128
    assert params["stop"] == ["DONE"]


def test_generate_reports_usage_from_response():
    provider = OpenAIProvider(api_key="test", model="gpt-4o-mini")
    provider._client = MagicMock()
    provider._client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="pong"))],
        usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10),
    )

    response = provider.generate([{"role": "user", "content": "ping"}])

    assert response.text == "pong"
    assert response.usage == {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10}


def test_groq_provider_defaults_to_groq_endpoint():
    provider = GroqProvider(api_key="test", model="llama-3.1-8b-instant")

    assert str(provider._client.base_url).rstrip("/") == GROQ_BASE_URL
