"""LiteLLM provider - one interface to every supported chat backend."""

import logging
from typing import Any
from urllib.parse import parse_qsl, urlsplit, urlunsplit

import litellm
import openai

from cannoli.llm.config import (
    FUNCTION_CALLING_PROVIDERS,
    LITELLM_PREFIXES,
    GetDefaultsByProvider,
    ModelConfig,
    SupportedProvider,
    merge_config,
)
from cannoli.llm.functions import extract_json_object, messages_with_function_prompt
from cannoli.llm.provider import (
    ChatMessage,
    CompletionRequest,
    FunctionCall,
    LLMProvider,
    LLMResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_NUM_RETRIES = 3


def split_base_url(base_url: str | None) -> tuple[str | None, dict[str, str]]:
    """
    Separate a base URL from its query string.

    ``"https://proxy/v1?api-version=2"`` becomes
    ``("https://proxy/v1", {"api-version": "2"})``.
    """
    if not base_url:
        return None, {}
    parts = urlsplit(base_url)
    url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", parts.fragment))
    return url or None, dict(parse_qsl(parts.query))


class LiteLLMProvider(LLMProvider):
    """
    Chat completions through LiteLLM.

    The provider in the merged config selects the LiteLLM model prefix
    (``"gpt-4"`` on OpenAI becomes ``"openai/gpt-4"``). Backends without
    native function calling get the function schema as a system prompt and
    their JSON reply is returned as the function call's arguments.

    Example:
        provider = LiteLLMProvider(
            base_config=ModelConfig(provider="openai", api_key="sk-..."),
        )
        response = await provider.acomplete(CompletionRequest(messages=[...], model="gpt-4"))
    """

    def __init__(
        self,
        base_config: ModelConfig | None = None,
        defaults_by_provider: GetDefaultsByProvider | None = None,
        num_retries: int = DEFAULT_NUM_RETRIES,
    ):
        self.base_config = base_config or ModelConfig()
        self.defaults_by_provider = defaults_by_provider
        self.num_retries = num_retries

    def merged_config(self, request: CompletionRequest) -> ModelConfig:
        overrides = ModelConfig(
            provider=request.provider,
            model=request.model,
            temperature=request.temperature,
            top_p=request.top_p,
            frequency_penalty=request.frequency_penalty,
            presence_penalty=request.presence_penalty,
        )
        return merge_config(self.base_config, overrides, self.defaults_by_provider)

    @staticmethod
    def litellm_model(config: ModelConfig) -> str:
        provider = config.provider or SupportedProvider.OPENAI
        model = config.model or ""
        if provider is SupportedProvider.AZURE_OPENAI and config.azure_deployment_name:
            model = config.azure_deployment_name
        if "/" in model:
            return model
        return f"{LITELLM_PREFIXES[provider]}/{model}"

    def build_kwargs(self, request: CompletionRequest, config: ModelConfig) -> dict[str, Any]:
        provider = config.provider or SupportedProvider.OPENAI
        messages = request.messages
        native_functions = provider in FUNCTION_CALLING_PROVIDERS

        if request.functions and request.function_call and not native_functions:
            target = request.find_function(request.function_call.get("name", ""))
            messages = messages_with_function_prompt(messages, target or request.functions[0])

        kwargs: dict[str, Any] = {
            "model": self.litellm_model(config),
            "messages": [m.to_dict() for m in messages],
            "num_retries": self.num_retries,
        }
        if request.functions and request.function_call and native_functions:
            kwargs["functions"] = [fn.to_dict() for fn in request.functions]
            kwargs["function_call"] = request.function_call

        api_base, query = split_base_url(config.base_url)
        if query and provider is SupportedProvider.OPENAI:
            # litellm has no query parameter; an OpenAI client carries it on every request
            kwargs["client"] = openai.AsyncOpenAI(
                api_key=config.api_key,
                base_url=api_base,
                default_query=query,
                max_retries=0,
            )
        elif query:
            logger.warning(
                f"Ignoring query parameters in base_url for provider {provider.value}: "
                f"{', '.join(query)}"
            )

        optional = {
            "api_key": config.api_key,
            "api_base": api_base,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "frequency_penalty": config.frequency_penalty,
            "presence_penalty": config.presence_penalty,
            "seed": config.seed,
            "api_version": config.azure_api_version,
        }
        stop = request.stop or ([config.stop] if config.stop else None)
        if stop:
            optional["stop"] = stop
        kwargs.update({k: v for k, v in optional.items() if v is not None})
        return kwargs

    async def acomplete(self, request: CompletionRequest) -> LLMResponse:
        config = self.merged_config(request)
        kwargs = self.build_kwargs(request, config)
        logger.debug(f"litellm.acompletion model={kwargs['model']}")

        response = await litellm.acompletion(**kwargs)

        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0

        choices = getattr(response, "choices", None) or []
        if not choices or getattr(choices[0], "message", None) is None:
            return LLMResponse(
                message=None,
                model=config.model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                raw_response=response,
            )

        choice = choices[0]
        message = self._to_chat_message(choice.message, request, config)
        return LLMResponse(
            message=message,
            model=config.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            stop_reason=getattr(choice, "finish_reason", "") or "",
            raw_response=response,
        )

    @staticmethod
    def _to_chat_message(raw: Any, request: CompletionRequest, config: ModelConfig) -> ChatMessage:
        content = getattr(raw, "content", None) or ""
        wants_function = bool(request.functions and request.function_call)

        function_call = None
        raw_call = getattr(raw, "function_call", None)
        tool_calls = getattr(raw, "tool_calls", None)
        if tool_calls:
            raw_call = getattr(tool_calls[0], "function", None)
        if raw_call is not None:
            function_call = FunctionCall(
                name=getattr(raw_call, "name", "") or "",
                arguments=getattr(raw_call, "arguments", "") or "",
            )
        elif wants_function and config.provider not in FUNCTION_CALLING_PROVIDERS:
            function_call = FunctionCall(
                name=request.function_call["name"],
                arguments=extract_json_object(content),
            )
            content = ""

        return ChatMessage(role="assistant", content=content, function_call=function_call)
