"""Exception types for the tool pipeline.

Only configuration and transport problems are raised as exceptions. Parse
failures, unknown tools and failed tool runs are reported as data instead.
"""

from typing import Any


class ToolcallError(Exception):
    """Base class for toolcall-server errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        details: Extra context for logs and API responses
    """

    code = "toolcall_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the API error shape."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class RegistryError(ToolcallError):
    """The tool registry document could not be loaded or is invalid."""

    code = "registry_error"


class FieldMappingError(ToolcallError):
    """The field mapping file could not be loaded or is invalid."""

    code = "field_mapping_error"


class ToolInvocationError(ToolcallError):
    """A remote tool call failed at the transport or payload level."""

    code = "tool_invocation_error"


class SecondaryPassError(ToolcallError):
    """The follow-up summarization model call failed or returned nothing."""

    code = "secondary_pass_error"


class ModelCallError(ToolcallError):
    """A call to the language model failed or ended without a completion."""

    code = "model_error"
