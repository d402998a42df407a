"""Provider adapters behind one chat-completion contract."""

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings, get_settings
from .debug import MASK
from .errors import (
    ClientInitializationError,
    EmptyResponseError,
    NeuroShellError,
    ProviderRequestError,
)
from .models import (
    API_ERROR,
    ASSISTANT_ROLE,
    INITIALIZATION_ERROR,
    REASONING,
    REDACTED_THINKING,
    RESPONSE_ERROR,
    SYSTEM_ROLE,
    THINKING,
    USER_ROLE,
    ChatSession,
    LLMError,
    ModelConfig,
    StructuredLLMResponse,
    ThinkingBlock,
)
from .streaming import ChunkStream, Emit

logger = logging.getLogger(__name__)

REDACTED_THINKING_PLACEHOLDER = "[Thinking content redacted by Anthropic]"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
MOONSHOT_BASE_URL = "https://api.moonshot.ai/v1"
OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://github.com/vitadin/NeuroShell",
    "X-Title": "NeuroShell",
}


# --- Parameter helpers ---
def float_param(params: Dict[str, Any], key: str) -> Optional[float]:
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    logger.debug(f"Ignoring parameter {key}={value!r}: expected a number")
    return None


def int_param(params: Dict[str, Any], key: str) -> Optional[int]:
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    logger.debug(f"Ignoring parameter {key}={value!r}: expected an integer")
    return None


def str_param(params: Dict[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    logger.debug(f"Ignoring parameter {key}={value!r}: expected a string")
    return None


def budget_param(params: Dict[str, Any], key: str = "thinking_budget") -> Optional[int]:
    """Reads a thinking budget given as an int, a float or a numeric string."""
    value = params.get(key)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            pass
    logger.debug(f"Ignoring parameter {key}={value!r}: expected a number")
    return None


def chat_messages(session: ChatSession) -> List[Dict[str, str]]:
    """OpenAI-style message list with the system prompt first."""
    messages = []
    if session.system_prompt:
        messages.append({"role": SYSTEM_ROLE, "content": session.system_prompt})
    for m in session.messages:
        if m.role in (USER_ROLE, ASSISTANT_ROLE, SYSTEM_ROLE):
            messages.append({"role": m.role, "content": m.content})
        else:
            logger.debug(f"Skipping message with unsupported role '{m.role}'")
    if not messages:
        messages.append({"role": USER_ROLE, "content": ""})
    return messages


class HandleState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class LLMClient(ABC):
    """Abstract Base Class for all LLM provider adapters.

    An adapter owns a credential and a lazily created vendor SDK handle. The
    handle is built on first use and rebuilt after ``set_debug_transport``.
    Adapters never modify the sessions they are given.
    """

    provider_name: str = ""

    def __init__(self, api_key: str, settings: Optional[Settings] = None):
        self.api_key = api_key or ""
        self.settings = settings or get_settings()
        self.debug_transport: Optional[httpx.BaseTransport] = None
        self.state = HandleState.UNINITIALIZED
        self._handle: Any = None
        self._http: Optional[httpx.Client] = None

    def get_provider_name(self) -> str:
        return self.provider_name

    def is_configured(self) -> bool:
        return bool(self.api_key.strip())

    def set_debug_transport(self, transport: Optional[httpx.BaseTransport]):
        """Routes subsequent vendor traffic through ``transport``.

        The current vendor handle is discarded so the next call rebuilds it.
        The HTTP client built for a previous transport is closed.
        """
        if transport is not self.debug_transport and self._http is not None:
            self._http.close()
            self._http = None
        self.debug_transport = transport
        self._handle = None
        self.state = HandleState.UNINITIALIZED

    def _http_client(self) -> Optional[httpx.Client]:
        if self.debug_transport is None:
            return None
        if self._http is None:
            self._http = httpx.Client(
                transport=self.debug_transport, timeout=self.settings.request_timeout
            )
        return self._http

    def _ensure_handle(self) -> Any:
        if self.state is HandleState.READY:
            return self._handle
        if not self.is_configured():
            raise ClientInitializationError(
                f"{self.provider_name} API key not configured"
            )
        try:
            self._handle = self._create_handle()
        except Exception as e:
            raise ClientInitializationError(
                f"failed to create {self.provider_name} client: {self._scrub(str(e))}"
            ) from e
        self.state = HandleState.READY
        logger.debug(f"Created {self.provider_name} client handle")
        return self._handle

    def _scrub(self, text: str) -> str:
        if self.api_key:
            return text.replace(self.api_key, MASK)
        return text

    def _request_error(self, error: Exception) -> ProviderRequestError:
        status_code = getattr(error, "status_code", None)
        if not isinstance(status_code, int):
            status_code = getattr(error, "code", None)
            if not isinstance(status_code, int):
                status_code = None
        return ProviderRequestError(
            self.provider_name, self._scrub(str(error)), status_code=status_code
        )

    # --- Vendor specifics ---
    @abstractmethod
    def _create_handle(self) -> Any:
        """Builds the vendor SDK client from the credential and debug transport."""
        pass

    @abstractmethod
    def _request(self, handle: Any, session: ChatSession, model_config: ModelConfig) -> Any:
        """Performs one non-streaming vendor call.

        Parameters
        ----------
        handle : Any
            The vendor SDK client returned by ``_create_handle``.
        session : ChatSession
            Conversation to send. Read only.
        model_config : ModelConfig
            Target model and generation parameters.

        Returns
        -------
        Any
            The provider's native response object.
        """
        pass

    @abstractmethod
    def _stream(
        self, handle: Any, session: ChatSession, model_config: ModelConfig, emit: Emit
    ):
        """Performs one streaming vendor call, passing text deltas to ``emit``.

        Implementations stop reading as soon as ``emit`` returns False.
        """
        pass

    @abstractmethod
    def extract_content(self, response: Any) -> str:
        """Extracts the answer text from the provider's native response object.

        Parameters
        ----------
        response : Any
            The provider's native response object from generate_response.

        Returns
        -------
        str
            The answer text, without any thinking or reasoning content.
        """
        pass

    def extract_thinking(self, response: Any) -> List[ThinkingBlock]:
        return []

    # --- Public contract ---
    def generate_response(self, session: ChatSession, model_config: ModelConfig) -> Any:
        """Sends the session and returns the provider's native response object."""
        handle = self._ensure_handle()
        logger.debug(
            f"Sending {len(session.messages)} messages to "
            f"{self.provider_name}/{model_config.base_model}"
        )
        try:
            return self._request(handle, session, model_config)
        except NeuroShellError:
            raise
        except Exception as e:
            logger.error(f"{self.provider_name} request failed: {self._scrub(str(e))}")
            raise self._request_error(e) from e

    def send_chat_completion(self, session: ChatSession, model_config: ModelConfig) -> str:
        response = self.generate_response(session, model_config)
        text = self.extract_content(response)
        if not text:
            raise EmptyResponseError("empty response content")
        return text

    def stream_chat_completion(
        self, session: ChatSession, model_config: ModelConfig
    ) -> ChunkStream:
        """Starts a streamed completion.

        Initialization failures raise here; failures during the exchange
        arrive as the error of the terminal chunk.
        """
        handle = self._ensure_handle()

        def produce(emit: Emit):
            try:
                self._stream(handle, session, model_config, emit)
            except NeuroShellError:
                raise
            except Exception as e:
                raise self._request_error(e) from e

        return ChunkStream(produce, maxsize=self.settings.stream_queue_size)

    def send_structured_completion(
        self, session: ChatSession, model_config: ModelConfig
    ) -> StructuredLLMResponse:
        """Sends the session and separates thinking content from the answer.

        Never raises: failures are reported through the ``error`` field.
        """
        metadata = {"provider": self.provider_name, "model": model_config.base_model}
        try:
            response = self.generate_response(session, model_config)
            text = self.extract_content(response)
            blocks = self.extract_thinking(response)
        except Exception as e:
            return StructuredLLMResponse(error=error_from_exception(e), metadata=metadata)
        if not text:
            return StructuredLLMResponse(
                thinking_blocks=blocks,
                error=LLMError(
                    code="empty_response",
                    message="empty response content",
                    type=RESPONSE_ERROR,
                ),
                metadata=metadata,
            )
        return StructuredLLMResponse(
            text_content=text, thinking_blocks=blocks, metadata=metadata
        )


def error_from_exception(error: Exception) -> LLMError:
    if isinstance(error, ClientInitializationError):
        return LLMError(
            code="client_initialization_failed",
            message=str(error),
            type=INITIALIZATION_ERROR,
        )
    if isinstance(error, EmptyResponseError):
        return LLMError(code="empty_response", message=str(error), type=RESPONSE_ERROR)
    if isinstance(error, ProviderRequestError) and error.status_code == 429:
        return LLMError(code="rate_limit_exceeded", message=str(error), type=API_ERROR)
    return LLMError(code="api_request_failed", message=str(error), type=API_ERROR)


class OpenAIClient(LLMClient):
    """OpenAI Chat Completions."""

    provider_name = "openai"

    def _client_kwargs(self) -> Dict[str, Any]:
        return {
            "api_key": self.api_key,
            "timeout": self.settings.request_timeout,
            "http_client": self._http_client(),
        }

    def _create_handle(self):
        from openai import OpenAI

        return OpenAI(**self._client_kwargs())

    def _completion_kwargs(self, session, model_config) -> Dict[str, Any]:
        params = model_config.parameters
        kwargs = {"model": model_config.base_model, "messages": chat_messages(session)}
        for key in ("temperature", "top_p", "frequency_penalty", "presence_penalty"):
            value = float_param(params, key)
            if value is not None:
                kwargs[key] = value
        max_tokens = int_param(params, "max_tokens")
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        return kwargs

    def _request(self, handle, session, model_config):
        return handle.chat.completions.create(
            **self._completion_kwargs(session, model_config)
        )

    def _stream(self, handle, session, model_config, emit):
        stream = handle.chat.completions.create(
            stream=True, **self._completion_kwargs(session, model_config)
        )
        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                if not emit(chunk.choices[0].delta.content or ""):
                    break
        finally:
            stream.close()

    def extract_content(self, response: Any) -> str:
        if not response.choices:
            raise EmptyResponseError("no response choices returned")
        return response.choices[0].message.content or ""


class OpenAIReasoningClient(OpenAIClient):
    """OpenAI adapter that switches to the Responses API for reasoning models.

    Requests whose parameters include ``reasoning_effort`` go through the
    Responses API, which returns reasoning summaries alongside the answer.
    Everything else uses Chat Completions.
    """

    @staticmethod
    def uses_responses_api(model_config: ModelConfig) -> bool:
        return "reasoning_effort" in model_config.parameters

    def _responses_kwargs(self, session, model_config) -> Dict[str, Any]:
        params = model_config.parameters
        reasoning = {}
        effort = str_param(params, "reasoning_effort")
        if effort:
            reasoning["effort"] = effort
        summary = str_param(params, "reasoning_summary")
        if summary:
            reasoning["summary"] = summary
        kwargs = {
            "model": model_config.base_model,
            "input": chat_messages(session),
            "reasoning": reasoning,
        }
        # max_tokens is only a fallback when max_output_tokens is absent
        if "max_output_tokens" in params:
            max_output_tokens = int_param(params, "max_output_tokens")
        else:
            max_output_tokens = int_param(params, "max_tokens")
        if max_output_tokens is not None:
            kwargs["max_output_tokens"] = max_output_tokens
        for key in ("temperature", "top_p"):
            value = float_param(params, key)
            if value is not None:
                kwargs[key] = value
        return kwargs

    def _request(self, handle, session, model_config):
        if not self.uses_responses_api(model_config):
            return super()._request(handle, session, model_config)
        return handle.responses.create(**self._responses_kwargs(session, model_config))

    def _stream(self, handle, session, model_config, emit):
        if not self.uses_responses_api(model_config):
            return super()._stream(handle, session, model_config, emit)
        response = handle.responses.create(
            **self._responses_kwargs(session, model_config)
        )
        emit(self.extract_content(response))

    @staticmethod
    def _is_responses_output(response: Any) -> bool:
        return getattr(response, "object", None) == "response"

    def extract_content(self, response: Any) -> str:
        if not self._is_responses_output(response):
            return super().extract_content(response)
        parts = []
        for item in response.output or []:
            if item.type != "message":
                continue
            for content in item.content or []:
                if content.type == "output_text":
                    parts.append(content.text)
        return "".join(parts)

    def extract_thinking(self, response: Any) -> List[ThinkingBlock]:
        if not self._is_responses_output(response):
            return []
        blocks = []
        for item in response.output or []:
            if item.type != "reasoning":
                continue
            for summary in getattr(item, "summary", None) or []:
                if summary.type == "summary_text" and summary.text:
                    blocks.append(
                        ThinkingBlock(
                            content=summary.text,
                            provider=self.provider_name,
                            type=REASONING,
                        )
                    )
        return blocks


class OpenAICompatibleClient(OpenAIClient):
    """Chat Completions against an OpenAI-compatible endpoint (OpenRouter, Moonshot)."""

    def __init__(
        self,
        provider_name: str,
        api_key: str,
        base_url: str,
        default_headers: Optional[Dict[str, str]] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(api_key, settings=settings)
        self.provider_name = provider_name
        self.base_url = base_url
        self.default_headers = dict(default_headers or {})

    def _client_kwargs(self) -> Dict[str, Any]:
        kwargs = super()._client_kwargs()
        kwargs["base_url"] = self.base_url
        if self.default_headers:
            kwargs["default_headers"] = self.default_headers
        return kwargs


class AnthropicClient(LLMClient):
    """Anthropic Messages API with optional extended thinking."""

    provider_name = "anthropic"

    def _create_handle(self):
        from anthropic import Anthropic

        return Anthropic(
            api_key=self.api_key,
            timeout=self.settings.request_timeout,
            http_client=self._http_client(),
        )

    def _message_kwargs(self, session, model_config) -> Dict[str, Any]:
        params = model_config.parameters
        system_parts = [session.system_prompt] if session.system_prompt else []
        messages = []
        for m in session.messages:
            if m.role in (USER_ROLE, ASSISTANT_ROLE):
                messages.append({"role": m.role, "content": m.content})
            elif m.role == SYSTEM_ROLE:
                system_parts.append(m.content)
            else:
                logger.debug(f"Skipping message with unsupported role '{m.role}'")
        if not messages:
            messages.append({"role": USER_ROLE, "content": ""})

        max_tokens = int_param(params, "max_tokens")
        kwargs = {
            "model": model_config.base_model,
            "messages": messages,
            "max_tokens": max_tokens or self.settings.anthropic_default_max_tokens,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        for key in ("temperature", "top_p"):
            value = float_param(params, key)
            if value is not None:
                kwargs[key] = value
        top_k = int_param(params, "top_k")
        if top_k is not None:
            kwargs["top_k"] = top_k
        budget = budget_param(params)
        if budget is not None and budget > 0:
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": budget}
        return kwargs

    def _request(self, handle, session, model_config):
        return handle.messages.create(**self._message_kwargs(session, model_config))

    def _stream(self, handle, session, model_config, emit):
        with handle.messages.stream(**self._message_kwargs(session, model_config)) as stream:
            for text in stream.text_stream:
                if not emit(text):
                    break

    def extract_content(self, response: Any) -> str:
        return "".join(
            block.text for block in response.content or [] if block.type == "text"
        )

    def extract_thinking(self, response: Any) -> List[ThinkingBlock]:
        blocks = []
        for block in response.content or []:
            if block.type == "thinking":
                blocks.append(
                    ThinkingBlock(
                        content=block.thinking, provider=self.provider_name, type=THINKING
                    )
                )
            elif block.type == "redacted_thinking":
                blocks.append(
                    ThinkingBlock(
                        content=REDACTED_THINKING_PLACEHOLDER,
                        provider=self.provider_name,
                        type=REDACTED_THINKING,
                    )
                )
        return blocks


class GeminiClient(LLMClient):
    """Google Gemini through the google-genai SDK."""

    provider_name = "gemini"

    def _create_handle(self):
        from google import genai
        from google.genai import types

        http_options = types.HttpOptions(
            timeout=int(self.settings.request_timeout * 1000),
            client_args={"transport": self.debug_transport}
            if self.debug_transport is not None
            else None,
        )
        return genai.Client(api_key=self.api_key, http_options=http_options)

    @staticmethod
    def build_contents(session: ChatSession) -> List[Any]:
        from google.genai import types

        contents = []
        for m in session.messages:
            if m.role == USER_ROLE:
                role, text = "user", m.content
            elif m.role == ASSISTANT_ROLE:
                role, text = "model", m.content
            elif m.role == SYSTEM_ROLE:
                role, text = "user", f"System: {m.content}"
            else:
                logger.debug(f"Skipping message with unsupported role '{m.role}'")
                continue
            contents.append(types.Content(role=role, parts=[types.Part(text=text)]))
        if not contents:
            contents.append(types.Content(role="user", parts=[types.Part(text="")]))
        return contents

    def build_config(self, session: ChatSession, model_config: ModelConfig) -> Any:
        from google.genai import types

        params = model_config.parameters
        config: Dict[str, Any] = {}
        if session.system_prompt:
            config["system_instruction"] = session.system_prompt
        for key in ("temperature", "top_p"):
            value = float_param(params, key)
            if value is not None:
                config[key] = value
        top_k = int_param(params, "top_k")
        if top_k is not None:
            config["top_k"] = top_k
        max_tokens = int_param(params, "max_tokens")
        if max_tokens is not None:
            config["max_output_tokens"] = max_tokens

        budget = budget_param(params)
        if budget == -1:
            config["thinking_config"] = types.ThinkingConfig(
                include_thoughts=True, thinking_budget=-1
            )
        elif budget == 0:
            config["thinking_config"] = types.ThinkingConfig(
                include_thoughts=False, thinking_budget=0
            )
        elif budget is not None and budget > 0:
            config["thinking_config"] = types.ThinkingConfig(
                include_thoughts=True, thinking_budget=budget
            )
        return types.GenerateContentConfig(**config)

    def _request(self, handle, session, model_config):
        return handle.models.generate_content(
            model=model_config.base_model,
            contents=self.build_contents(session),
            config=self.build_config(session, model_config),
        )

    def _stream(self, handle, session, model_config, emit):
        stream = handle.models.generate_content_stream(
            model=model_config.base_model,
            contents=self.build_contents(session),
            config=self.build_config(session, model_config),
        )
        for chunk in stream:
            text = "".join(
                part.text or "" for part in self._parts(chunk) if not part.thought
            )
            if not emit(text):
                break

    @staticmethod
    def _parts(response: Any) -> List[Any]:
        if not response.candidates:
            return []
        content = response.candidates[0].content
        if content is None or not content.parts:
            return []
        return list(content.parts)

    def extract_content(self, response: Any) -> str:
        return "".join(
            part.text or "" for part in self._parts(response) if not part.thought
        )

    def extract_thinking(self, response: Any) -> List[ThinkingBlock]:
        return [
            ThinkingBlock(content=part.text, provider=self.provider_name, type=THINKING)
            for part in self._parts(response)
            if part.thought and part.text
        ]


class EchoClient(LLMClient):
    """Offline adapter that echoes the last user message.

    Useful for testing pipelines without network access. Faults can be
    injected through the message text: ``trigger rate limit`` produces an HTTP
    429 style failure after some partial output, ``trigger empty response``
    produces an empty answer.
    """

    provider_name = "echo"

    def __init__(
        self, api_key: str = "echo", settings: Optional[Settings] = None, delay: float = 0.0
    ):
        super().__init__(api_key, settings=settings)
        self.delay = delay

    def _create_handle(self):
        return object()

    @staticmethod
    def _last_user_message(session: ChatSession) -> str:
        for m in reversed(session.messages):
            if m.role == USER_ROLE:
                return m.content
        return ""

    def _request(self, handle, session, model_config):
        if self.delay:
            time.sleep(self.delay)
        prompt = self._last_user_message(session)
        lowered = prompt.lower()
        if "trigger rate limit" in lowered:
            raise ProviderRequestError(
                self.provider_name, "rate limit exceeded", status_code=429
            )
        if "trigger empty response" in lowered:
            return {"content": "", "thinking": ""}
        return {
            "content": f"Echo: {prompt}" if prompt else "Echo: (no message provided)",
            "thinking": f"The user said {len(prompt)} characters; repeating them.",
        }

    def _stream(self, handle, session, model_config, emit):
        text = self.extract_content(self._request(handle, session, model_config))
        for i, word in enumerate(text.split(" ")):
            if not emit(word if i == 0 else " " + word):
                break

    def extract_content(self, response: Any) -> str:
        if isinstance(response, dict) and "content" in response:
            return response["content"]
        return str(response)

    def extract_thinking(self, response: Any) -> List[ThinkingBlock]:
        if isinstance(response, dict) and response.get("thinking"):
            return [
                ThinkingBlock(
                    content=response["thinking"], provider=self.provider_name
                )
            ]
        return []

    def send_structured_completion(self, session, model_config):
        prompt = self._last_user_message(session)
        if "trigger rate limit" not in prompt.lower():
            return super().send_structured_completion(session, model_config)
        return StructuredLLMResponse(
            text_content="Echo: partial response before the rate limit",
            thinking_blocks=[
                ThinkingBlock(
                    content="Started answering before the provider refused.",
                    provider=self.provider_name,
                )
            ],
            error=LLMError(
                code="rate_limit_exceeded",
                message="echo request failed: rate limit exceeded",
                type=API_ERROR,
            ),
            metadata={"provider": self.provider_name, "model": model_config.base_model},
        )
