import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from openbook.chatbot.llm_client import LLMClient, to_langchain_messages
from openbook.schema.core_schema import PromptMessage, TokenUsage


class FakeChatModel:
    def __init__(self, reply):
        self.reply = reply
        self.invocations = []

    def invoke(self, messages):
        self.invocations.append(messages)
        return self.reply


def client_with(reply):
    # Skip __init__ so no provider client or tokenizer is created
    client = LLMClient.__new__(LLMClient)
    client.model = "test-model"
    client._llm = FakeChatModel(reply)
    client._tokenizer = None
    return client


MESSAGES = [
    PromptMessage(role="system", content="persona"),
    PromptMessage(role="system", content="context"),
    PromptMessage(role="user", content="hi"),
    PromptMessage(role="assistant", content="hello"),
    PromptMessage(role="user", content="what next?"),
]


def test_system_messages_are_merged_into_one_leading_instruction():
    converted = to_langchain_messages(MESSAGES)

    assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]
    assert converted[0].content == "persona\n\ncontext"
    assert [m.content for m in converted[1:]] == ["hi", "hello", "what next?"]


def test_no_system_message():
    converted = to_langchain_messages([PromptMessage(role="user", content="hi")])

    assert len(converted) == 1
    assert isinstance(converted[0], HumanMessage)


def test_complete_uses_provider_usage_metadata():
    reply = AIMessage(
        content="Sure.",
        usage_metadata={"input_tokens": 40, "output_tokens": 6, "total_tokens": 46},
    )
    client = client_with(reply)

    completion = client.complete(MESSAGES)

    assert completion.text == "Sure."
    assert completion.usage == TokenUsage.of(40, 6)
    assert isinstance(client._llm.invocations[0][0], SystemMessage)


def test_complete_estimates_usage_when_metadata_missing():
    client = client_with(AIMessage(content=[{"type": "text", "text": "abcd"}, "efgh"]))

    completion = client.complete([PromptMessage(role="user", content="x" * 34)])

    assert completion.text == "abcdefgh"
    # "user: " + 34 characters at four characters per token
    assert completion.usage == TokenUsage.of(10, 2)


def test_missing_api_key_is_rejected(monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with pytest.raises(ValueError, match="GOOGLE_API_KEY"):
        LLMClient()
