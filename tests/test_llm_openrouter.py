"""
Tests para llm_openrouter.py y provider_errors.py

Sin red: el cliente AsyncOpenAI se reemplaza por un fake con la misma forma.
"""

from types import SimpleNamespace

import httpx
import openai
import pytest

from duet.config import AgentConfig, LLMConfig
from duet.conversations.types import ChatTurn, ProviderError, ProviderErrorKind
from duet.llm_openrouter import FIXED_SYSTEM_MESSAGE, OpenRouterLLM
from duet.provider_errors import classify, kind_for_status


def _status_error(status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return openai.APIStatusError(f"HTTP {status}", response=response, body=None)


class FakeCompletions:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.result


def _completion(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _llm_with(completions: FakeCompletions) -> OpenRouterLLM:
    llm = OpenRouterLLM(LLMConfig(api_key="sk-or-test"))
    llm._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return llm


@pytest.fixture
def agent():
    return AgentConfig(name="Ada", model="openai/gpt-4o-mini", prompt="Sé breve.")


class TestBuildMessages:
    def test_layout(self, agent):
        llm = OpenRouterLLM(LLMConfig(api_key="sk-or-test"))
        history = [
            ChatTurn(role="user", content="hola", name="Human"),
            ChatTurn(role="assistant", content="hola humano"),
        ]
        messages = llm.build_messages(agent, "Bob", history, "¿qué tal?")

        assert messages[0] == {"role": "system", "content": FIXED_SYSTEM_MESSAGE}
        assert messages[1]["role"] == "system"
        assert messages[1]["content"] == (
            "Sé breve. You are Ada and you are talking to Bob. "
            "Keep your responses concise and engaging."
        )
        assert messages[2] == {"role": "user", "content": "hola", "name": "Human"}
        assert messages[3] == {"role": "assistant", "content": "hola humano"}
        assert messages[-1] == {"role": "user", "content": "¿qué tal?", "name": "Bob"}

    def test_prompt_with_marker_skips_fixed_message(self, agent):
        agent.prompt = "Terminá con #END# cuando te despidas."
        llm = OpenRouterLLM(LLMConfig(api_key="sk-or-test"))
        messages = llm.build_messages(agent, "Bob", [], "hola")
        assert FIXED_SYSTEM_MESSAGE not in [m["content"] for m in messages]
        assert messages[0]["role"] == "system"

    def test_names_sanitized(self, agent):
        llm = OpenRouterLLM(LLMConfig(api_key="sk-or-test"))
        messages = llm.build_messages(agent, "AI 2 (Bob)", [], "x")
        assert messages[-1]["name"] == "AI_2__Bob_"


class TestComplete:
    @pytest.mark.asyncio
    async def test_sends_agent_parameters(self, agent):
        completions = FakeCompletions(result=_completion("  hola  "))
        llm = _llm_with(completions)

        text = await llm.complete(agent, "Bob", [], "hola")

        assert text == "hola"
        assert completions.kwargs["model"] == "openai/gpt-4o-mini"
        assert completions.kwargs["max_tokens"] == 1200
        assert completions.kwargs["temperature"] == 0.5
        assert completions.kwargs["top_p"] == 1.0

    @pytest.mark.asyncio
    async def test_empty_choices(self, agent):
        llm = _llm_with(FakeCompletions(result=SimpleNamespace(choices=[])))
        with pytest.raises(ProviderError) as info:
            await llm.complete(agent, "Bob", [], "hola")
        assert info.value.kind is ProviderErrorKind.UNKNOWN

    @pytest.mark.asyncio
    async def test_unauthorized_classified(self, agent):
        llm = _llm_with(FakeCompletions(error=_status_error(401)))
        with pytest.raises(ProviderError) as info:
            await llm.complete(agent, "Bob", [], "hola")
        assert info.value.kind is ProviderErrorKind.UNAUTHORIZED
        assert "Invalid OpenRouter API key" in str(info.value)

    @pytest.mark.asyncio
    async def test_not_loaded(self, agent):
        llm = OpenRouterLLM(LLMConfig(api_key="sk-or-test"))
        with pytest.raises(RuntimeError):
            await llm.complete(agent, "Bob", [], "hola")

    def test_load_requires_key(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(ValueError):
            OpenRouterLLM(LLMConfig()).load()


class TestClassify:
    @pytest.mark.parametrize(
        "status, kind",
        [
            (401, ProviderErrorKind.UNAUTHORIZED),
            (403, ProviderErrorKind.UNAUTHORIZED),
            (429, ProviderErrorKind.RATE_LIMITED),
            (400, ProviderErrorKind.BAD_REQUEST),
            (503, ProviderErrorKind.UNAVAILABLE),
            (418, ProviderErrorKind.UNKNOWN),
        ],
    )
    def test_status_mapping(self, status, kind):
        assert kind_for_status(status) is kind
        error = classify(_status_error(status), "Groq")
        assert error.kind is kind
        assert error.status == status

    def test_connection_error(self):
        request = httpx.Request("GET", "https://api.groq.com/openai/v1/models")
        error = classify(openai.APIConnectionError(request=request), "Groq")
        assert error.kind is ProviderErrorKind.UNAVAILABLE
        assert "Groq" in str(error)

    def test_unknown_exception(self):
        error = classify(ValueError("raro"), "OpenRouter")
        assert error.kind is ProviderErrorKind.UNKNOWN
        assert "raro" in str(error)

    def test_provider_error_passthrough(self):
        original = ProviderError(ProviderErrorKind.BAD_REQUEST, "x")
        assert classify(original, "Groq") is original
