"""
Completion Client for PalliScribe
=================================

The generative backend is an external capability, so the synthesizer and
the entity extractor only see one narrow interface:

    acomplete(messages, *, temperature, max_tokens) -> str

`OllamaCompletionClient` implements it with LangChain's prompt | llm | parser
chain against a local Ollama server, asking Ollama for JSON-formatted output.
`MockCompletionClient` returns canned text or raises, for tests.
"""

import json
import logging
from typing import Callable, Optional, Protocol, Sequence, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_ollama import OllamaLLM

from palliscribe.config import Settings, get_settings
from palliscribe.exceptions import CompletionError, MalformedResponseError


logger = logging.getLogger(__name__)

# (role, content) pairs; role is one of "system", "user", "assistant"
ChatMessage = tuple[str, str]


class CompletionClientProtocol(Protocol):
    """
    Protocol for completion backends.

    Implementations raise on transport failure; callers decide how to
    degrade.
    """

    async def acomplete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Send a role-tagged message list, return the completion text."""
        ...


def _to_langchain_message(role: str, content: str) -> BaseMessage:
    # Message objects are passed through ChatPromptTemplate untouched, so
    # literal braces in JSON schema hints are not read as template variables.
    if role == "system":
        return SystemMessage(content=content)
    if role == "assistant":
        return AIMessage(content=content)
    return HumanMessage(content=content)


class OllamaCompletionClient:
    """
    Completion client backed by Ollama through LangChain.

    One OllamaLLM instance is kept per (temperature, max_tokens) pair; the
    note and entity requests use different fixed values.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._llms: dict[tuple[float, int], OllamaLLM] = {}

        logger.info(
            f"OllamaCompletionClient initialized with model: {self.settings.ollama_model}"
        )

    def _get_llm(self, temperature: float, max_tokens: int) -> OllamaLLM:
        key = (temperature, max_tokens)
        if key not in self._llms:
            logger.debug(
                f"Creating OllamaLLM (temperature={temperature}, max_tokens={max_tokens})"
            )
            self._llms[key] = OllamaLLM(
                model=self.settings.ollama_model,
                base_url=self.settings.ollama_base_url,
                temperature=temperature,
                num_predict=max_tokens,
                num_ctx=self.settings.ollama_context_window,
                format="json",
                client_kwargs={"timeout": self.settings.ollama_timeout},
            )
        return self._llms[key]

    async def acomplete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        prompt = ChatPromptTemplate.from_messages(
            [_to_langchain_message(role, content) for role, content in messages]
        )
        chain = prompt | self._get_llm(temperature, max_tokens) | StrOutputParser()

        try:
            logger.debug(f"Sending completion request to Ollama ({len(messages)} messages)")
            response = await chain.ainvoke({})
        except Exception as e:
            raise CompletionError(url=self.settings.ollama_base_url, original_error=str(e)) from e

        logger.debug(f"Received completion ({len(response)} chars)")
        return response


def parse_json_object(text: str) -> dict:
    """
    Parse a completion that is expected to hold one JSON object.

    Markdown code fences around the object are tolerated.

    Raises:
        MalformedResponseError: empty text, invalid JSON, or a non-object value
    """
    if not text or not text.strip():
        raise MalformedResponseError("empty response")

    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"invalid JSON ({e})", response_preview=text) from e

    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"expected a JSON object, got {type(data).__name__}",
            response_preview=text
        )
    return data


MockResponse = Union[str, Exception, Callable[[Sequence[ChatMessage]], str]]


class MockCompletionClient:
    """
    Mock completion client for testing.

    Each call consumes the next scripted response; the last one repeats.
    A response may be text, an exception to raise, or a callable taking the
    messages.

    Usage in tests:
        client = MockCompletionClient('{"soap": {...}}')
        client = MockCompletionClient(CompletionError("http://x", "refused"))
    """

    def __init__(self, *responses: MockResponse):
        self.responses = list(responses) or [""]
        self.calls: list[dict] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def acomplete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        index = min(len(self.calls), len(self.responses) - 1)
        self.calls.append(
            {"messages": list(messages), "temperature": temperature, "max_tokens": max_tokens}
        )
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(messages)
        return response


def create_completion_client(
    settings: Optional[Settings] = None,
    use_mock: bool = False,
    mock_response: str = "",
) -> CompletionClientProtocol:
    """Factory function to create the appropriate completion client."""
    if use_mock:
        logger.info("Creating mock completion client")
        return MockCompletionClient(mock_response)

    logger.info("Creating Ollama completion client")
    return OllamaCompletionClient(settings=settings)
