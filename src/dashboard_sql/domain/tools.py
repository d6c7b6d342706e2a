"""
Tool definitions offered to the language model.

A ModelTool couples a name and description with a pydantic argument model
(whose JSON schema is what the model sees) and an optional executor that
re-checks the decoded arguments. Running a tool validates the arguments
against the model and then calls the executor; any failure in either step
surfaces as ToolExecutionError, which callers treat as "the model produced
no usable result".
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .base_enums import CorrectionErrorKind, VisualizationKind
from .errors import ToolExecutionError
from .types import ToolArguments


class GenerateQueryArgs(BaseModel):
    """Arguments of the query generation tool."""

    query: str = Field(..., min_length=1, description="The generated ClickHouse SQL query")
    explanation: str = Field(..., description="Brief explanation of what the query does")
    card_type: VisualizationKind = Field(..., description="The card type this query is optimized for")
    columns: List[str] = Field(..., min_length=1, description="List of column names returned by the query")


class CorrectQueryArgs(BaseModel):
    """Arguments of the query correction tool."""

    can_correct: bool = Field(..., description="Whether the error can be corrected")
    corrected_query: Optional[str] = Field(
        default=None,
        description="The corrected SQL query (null if it cannot be corrected)"
    )
    error_kind: CorrectionErrorKind = Field(..., description="Category of the error")
    explanation: str = Field(..., description="Explanation of what caused the error and how it was fixed")
    user_friendly_message: str = Field(..., description="User-friendly explanation of what went wrong")
    alternatives: Optional[List[str]] = Field(
        default=None,
        description="Alternative requests the user could try if the query cannot be corrected"
    )


# Executor signature: validated arguments in, JSON-safe payload out; raise to reject
ToolExecutor = Callable[[BaseModel], Dict[str, Any]]


@dataclass(frozen=True)
class ModelTool:
    """A single callable tool: declared shape plus optional executor."""

    name: str
    description: str
    args_schema: Type[BaseModel]
    executor: Optional[ToolExecutor] = None

    def to_openai_tool(self) -> Dict[str, Any]:
        """Function-tool definition in the OpenAI chat completions format."""
        parameters = self.args_schema.model_json_schema()
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }

    def run(self, arguments: ToolArguments) -> Dict[str, Any]:
        """
        Validate the arguments and run the executor.

        Raises:
            ToolExecutionError: If the arguments do not match the schema or
                the executor rejects them
        """
        try:
            parsed = self.args_schema.model_validate(arguments)
        except PydanticValidationError as e:
            raise ToolExecutionError(
                f"Tool '{self.name}' called with invalid arguments",
                details={"tool": self.name, "errors": e.errors(include_url=False, include_context=False)},
            ) from e

        if self.executor is None:
            return parsed.model_dump(mode="json")

        try:
            return self.executor(parsed)
        except ToolExecutionError:
            raise
        except (ValueError, TypeError) as e:
            raise ToolExecutionError(str(e), details={"tool": self.name}) from e


@dataclass(frozen=True)
class ToolInvocation:
    """
    What the model returned for a tool-constrained call.

    Exactly one of payload (the tool ran and returned this) or text (the
    model answered without calling the tool) is set.
    """

    tool_name: str
    payload: Optional[Dict[str, Any]] = None
    text: Optional[str] = None

    @property
    def called_tool(self) -> bool:
        return self.payload is not None
