"""
LLM client for OpenRouter using LangChain.

This module provides an async LLM client that uses LangChain's ChatOpenAI
with OpenRouter API for tool-constrained query generation and correction.
"""

from typing import List, Optional
from langchain_openai import ChatOpenAI
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import SecretStr

from ..config import LLMConfig
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id
from ..domain.errors import ConfigurationError, LLMError
from ..domain.tools import ModelTool, ToolInvocation


logger = get_module_logger()


def validate_total_chars(instructions: str, prompt: str, max_chars: int) -> None:
    """
    Validate total character count for an LLM request.

    Raises:
        ValueError: If instructions plus prompt exceed max_chars
    """
    total_chars = len(instructions) + len(prompt)
    if total_chars > max_chars:
        raise ValueError(
            f"Total input too large: {total_chars} characters, "
            f"maximum allowed: {max_chars}"
        )


class LLMClient:
    """
    LLM client using LangChain's ChatOpenAI with OpenRouter.

    This is a thin infrastructure layer for LLM operations using OpenRouter API.
    Prompt construction belongs to the Repository layer.

    Features:
    - OpenRouter API integration via LangChain
    - Tool-constrained calls (bind_tools + AIMessage.tool_calls)
    - Configurable temperature, top_p, max_tokens
    - Structured logging with trace IDs
    - Automatic retry on transient failures (OpenAI SDK)
    - Input size validation

    Usage:
        client = LLMClient(config)
        await client.connect()

        invocation = await client.invoke_with_tool(
            instructions="You are a ClickHouse SQL query generator...",
            prompt="Show total hours by staff",
            tool=generation_tool,
        )
        if invocation.payload is not None:
            print(invocation.payload["query"])

        await client.close()
    """

    def __init__(self, config: LLMConfig):
        """
        Initialize LLM client with configuration.

        Args:
            config: LLM configuration
        """
        self.config = config
        self._llm: Optional[ChatOpenAI] = None
        self._is_connected = False

        logger.info(
            "LLMClient initialized",
            default_model=config.default_model,
            base_url=config.base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens
        )

    async def connect(self) -> None:
        """
        Initialize LangChain ChatOpenAI client.

        Note: This creates the client configuration but doesn't make any API calls.
        Validation happens on first actual use.

        Raises:
            ConfigurationError: If the OpenRouter API key is not set
            LLMError: If initialization fails
        """
        if self._is_connected:
            logger.warning("LLM client already connected")
            return

        if not self.config.openrouter_api_key:
            raise ConfigurationError("LLM__OPENROUTER_API_KEY is not set")

        trace_id = current_trace_id()
        logger.info("Initializing LLM client", trace_id=trace_id)

        try:
            # Use max_completion_tokens (not deprecated max_tokens)
            self._llm = ChatOpenAI(
                model=self.config.default_model,
                api_key=SecretStr(self.config.openrouter_api_key),
                base_url=self.config.base_url,
                temperature=self.config.temperature,
                max_completion_tokens=self.config.max_tokens,
                top_p=self.config.top_p,
                timeout=self.config.timeout_seconds,
                max_retries=self.config.max_retries
            )

            self._is_connected = True
            logger.info("LLM client initialized successfully", trace_id=trace_id)

        except Exception as e:
            error_msg = f"Failed to initialize LLM client: {e}"
            logger.error(error_msg, error_type=type(e).__name__, trace_id=trace_id)
            raise LLMError(error_msg) from e

    async def close(self) -> None:
        """Close LLM client and release resources."""
        trace_id = current_trace_id()
        logger.info("Closing LLM client", trace_id=trace_id)

        # LangChain ChatOpenAI doesn't need explicit cleanup
        self._is_connected = False
        self._llm = None

        logger.info("LLM client closed", trace_id=trace_id)

    def is_connected(self) -> bool:
        """Check if LLM client is connected."""
        return self._is_connected and self._llm is not None

    async def invoke_with_tool(
        self,
        instructions: str,
        prompt: str,
        tool: ModelTool,
    ) -> ToolInvocation:
        """
        Call the model with exactly one tool bound.

        When require_tool_call is set the model is forced to call the tool;
        otherwise it may answer in free text.

        Args:
            instructions: System instructions
            prompt: User prompt
            tool: The single tool offered to the model

        Returns:
            ToolInvocation with the tool's payload, or the model's text when
            it did not call the tool

        Raises:
            ToolExecutionError: If the tool call's arguments are rejected
            LLMError: If the call fails or input exceeds the configured limit
        """
        if not self.is_connected():
            raise LLMError("LLM client is not connected")

        try:
            validate_total_chars(instructions, prompt, self.config.max_input_chars)
        except ValueError as e:
            raise LLMError(str(e)) from e

        trace_id = current_trace_id()

        logger.info(
            "Invoking LLM with tool",
            tool=tool.name,
            prompt_length=len(prompt),
            instructions_length=len(instructions),
            require_tool_call=self.config.require_tool_call,
            trace_id=trace_id
        )

        try:
            if not self._llm:
                raise LLMError("LLM client not initialized")

            messages: List[BaseMessage] = [
                SystemMessage(content=instructions),
                HumanMessage(content=prompt),
            ]

            llm = self._llm.bind_tools(
                [tool.to_openai_tool()],
                tool_choice=tool.name if self.config.require_tool_call else "auto",
            )
            response = await llm.ainvoke(messages)

        except LLMError:
            raise
        except Exception as e:
            error_msg = f"LLM invocation failed: {e}"
            logger.error(
                error_msg,
                error_type=type(e).__name__,
                tool=tool.name,
                trace_id=trace_id
            )
            raise LLMError(error_msg) from e

        tool_call = next(
            (call for call in getattr(response, "tool_calls", None) or [] if call.get("name") == tool.name),
            None,
        )

        if tool_call is None:
            text = self._response_text(response)
            logger.info(
                "LLM answered without calling the tool",
                tool=tool.name,
                response_length=len(text),
                trace_id=trace_id
            )
            return ToolInvocation(tool_name=tool.name, text=text)

        # Raises ToolExecutionError when the arguments or the executor reject the call
        payload = tool.run(tool_call.get("args") or {})

        logger.info("LLM tool call accepted", tool=tool.name, trace_id=trace_id)
        return ToolInvocation(tool_name=tool.name, payload=payload)

    @staticmethod
    def _response_text(response: BaseMessage) -> str:
        if isinstance(response, AIMessage) and isinstance(response.content, list):
            return "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in response.content
            )
        return str(response.content or "")
