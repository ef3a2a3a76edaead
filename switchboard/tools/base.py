"""
Base classes for the tool calling system.

A tool is declared once as a provider-agnostic ToolDefinition and executed
locally when the realtime model asks for it. Tools hold no per-call state;
everything call-specific arrives through the ToolExecutionContext.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from enum import Enum

import structlog

logger = structlog.get_logger(__name__)


class ToolCategory(Enum):
    """Category of tool for execution routing."""
    ROUTING = "routing"    # Hands the call to another persona
    BUSINESS = "business"  # Answers from a backing lookup


# JSON schema type name -> accepted Python types
_TYPE_CHECKS = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "number", "array", "object"
    description: str
    required: bool = False
    enum: Optional[List[str]] = None
    nullable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON schema property."""
        result: Dict[str, Any] = {
            "type": [self.type, "null"] if self.nullable else self.type,
            "description": self.description,
        }
        if self.enum:
            result["enum"] = list(self.enum)
        return result

    def check(self, value: Any) -> None:
        """
        Validate a single argument value.

        Raises:
            ValueError: value has the wrong type or is outside the enum
        """
        if value is None:
            if self.nullable:
                return
            raise ValueError(f"Parameter {self.name} must not be null")

        accepted = _TYPE_CHECKS.get(self.type)
        if accepted is None:
            raise ValueError(f"Parameter {self.name} declares unsupported type {self.type}")
        # bool is an int subclass; never let true/false pass as a number
        if isinstance(value, bool) and self.type != "boolean":
            raise ValueError(f"Parameter {self.name} must be {self.type}, got boolean")
        if not isinstance(value, accepted):
            raise ValueError(
                f"Parameter {self.name} must be {self.type}, got {type(value).__name__}"
            )
        if self.enum and value not in self.enum:
            raise ValueError(
                f"Invalid value for {self.name}. "
                f"Must be one of: {', '.join(self.enum)}"
            )


@dataclass
class ToolDefinition:
    """
    Provider-agnostic tool definition.

    Contains all metadata needed to expose a tool to the realtime model.
    """
    name: str
    description: str
    category: ToolCategory
    parameters: List[ToolParameter] = field(default_factory=list)
    max_execution_time: float = 10.0  # Timeout in seconds

    def to_openai_realtime_schema(self) -> Dict[str, Any]:
        """
        Convert to OpenAI Realtime API function calling format.

        OpenAI Realtime format (flat, unlike Chat Completions):
        {
            "type": "function",
            "name": "tool_name",
            "description": "Tool description",
            "parameters": {
                "type": "object",
                "properties": {...},
                "required": [...]
            }
        }
        """
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {
                    p.name: p.to_dict()
                    for p in self.parameters
                },
                "required": [p.name for p in self.parameters if p.required],
                "additionalProperties": False,
            },
        }


class Tool(ABC):
    """
    A capability the model can call.

    Subclasses provide ``definition`` (name, schema, timeout) and ``execute``.
    Tools keep no per-call state; everything call-specific arrives in the
    ToolExecutionContext.
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return tool definition with metadata."""
        pass

    @abstractmethod
    async def execute(
        self,
        parameters: Dict[str, Any],
        context: 'ToolExecutionContext'
    ) -> Dict[str, Any]:
        """
        Execute the tool with already validated parameters.

        Args:
            parameters: Tool arguments from the model
            context: Execution context with call info and lookup services

        Returns:
            Result dictionary with:
            - status: "success" | "error"
            - message: Sentence for the model to speak
            - Additional tool-specific fields
        """
        pass

    async def validate_parameters(self, parameters: Dict[str, Any]) -> bool:
        """
        Validate parameters before execution.

        Arguments are checked as given: no type coercion, no defaults filled in,
        and names the schema does not declare are rejected.

        Returns:
            True if valid

        Raises:
            ValueError: If validation fails with specific error message
        """
        if not isinstance(parameters, dict):
            raise ValueError(f"Arguments must be an object, got {type(parameters).__name__}")

        declared = {p.name: p for p in self.definition.parameters}
        unknown = sorted(set(parameters) - set(declared))
        if unknown:
            raise ValueError(f"Unknown parameter(s): {', '.join(unknown)}")

        for param in self.definition.parameters:
            if param.name not in parameters:
                if param.required:
                    raise ValueError(f"Missing required parameter: {param.name}")
                continue
            param.check(parameters[param.name])

        return True


def error_result(message: str, error: str) -> Dict[str, Any]:
    """Structured failure result that still gives the model a sentence to speak."""
    return {
        "status": "error",
        "outcome": "error",
        "has_results": False,
        "message": message,
        "error": error,
    }
