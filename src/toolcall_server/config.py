"""Configuration module for toolcall-server using pydantic-settings."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Packaged default field mappings, used when no override file is configured
DEFAULT_FIELD_MAPPINGS_PATH = Path(__file__).parent / "formatters" / "data" / "field_mappings.json"


class IntentGateSettings(BaseModel):
    """Tunable rules for the intent gate that runs before tool-call detection.

    All pattern lists are regular expressions matched case-insensitively
    against the user's literal question.
    """

    enabled: bool = True
    min_attachment_message_length: int = 20
    theory_patterns: list[str] = Field(
        default_factory=lambda: [
            r"^\s*what\s+(is|are)\s+(a|an)\s+",
            r"\bwhat\s+does\s+.+\s+mean\b",
            r"^\s*(please\s+)?explain\b",
            r"\bdefinition\s+of\b",
            r"\bconcept\s+of\b",
            r"\bbest\s+practices?\b",
            r"\b(advantages|disadvantages|pros\s+and\s+cons)\s+of\b",
            r"^\s*how\s+(can|do|should)\s+(i|we)\s+(improve|optimi[sz]e|manage)\b",
            r"^\s*(please\s+)?(describe|introduce)\s+the\s+(theory|principles?|framework)\b",
        ]
    )
    file_analysis_patterns: list[str] = Field(
        default_factory=lambda: [
            r"\banaly[sz]e\s+(this|the|my|attached)\s+(file|document|csv|excel|spreadsheet|data)\b",
            r"^\s*(please\s+)?analy[sz]e\s+(this|it)\b",
            r"\bsummari[sz]e\s+(this|the|my|attached)\s+(file|document|csv|excel|spreadsheet)\b",
            r"\b(statistical|data)\s+(summary|insights?)\b",
            r"\bprovide\s+(some\s+)?statistics\b",
        ]
    )
    file_sharing_patterns: list[str] = Field(
        default_factory=lambda: [
            r"^\s*(here\s+is|this\s+is|attached|uploading|sharing)\b",
            r"^\s*(see|check)\s+(the\s+)?(attached|attachment|file)\b",
            r"^\s*(file|document|attachment)\s*[.!]?\s*$",
        ]
    )
    # Tool-call syntax written by the user themselves
    explicit_syntax_patterns: list[str] = Field(
        default_factory=lambda: [
            r'"tool"\s*:',
            r"<tool_call\b",
            r"```json",
        ]
    )
    explicit_request_patterns: list[str] = Field(
        default_factory=lambda: [
            r"\b(use|call|run|invoke)\s+(the\s+)?[\w.-]+\s+tool\b",
            r"\b(look\s*up|query|fetch)\s+(the\s+)?(records?|projects?|database)\b",
        ]
    )


class CompletenessSettings(BaseModel):
    """Markers that make a formatted report count as a complete answer."""

    required_markers: list[str] = Field(
        default_factory=lambda: ["### Summary", "### Records"]
    )
    min_length: int = 400


class ToolcallServerSettings(BaseSettings):
    """Main configuration settings for toolcall-server.

    All settings can be overridden via environment variables with the TOOLCALL_ prefix.
    For example, TOOLCALL_OLLAMA_HOST will override the ollama_host setting, and
    TOOLCALL_INTENT_GATE__ENABLED=false disables the intent gate.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Ollama
    ollama_host: str = "http://localhost:11434"
    default_model: str = "llama3.2:latest"

    # Secondary summarization pass
    secondary_pass_enabled: bool = True
    secondary_model: str | None = None
    secondary_temperature: float = 0.0
    secondary_max_tokens: int = 800
    secondary_timeout: float = 60.0

    # Tool registry
    data_dir: str = "."
    registry_file: str = "tools/registry.json"
    registry_url: str | None = None
    registry_refresh_interval: float = 300.0

    # Tool execution
    tool_timeout: float = 30.0
    tool_timeouts: dict[str, float] = Field(default_factory=dict)
    concurrent_tool_execution: bool = False

    # Formatting
    field_mappings_file: str | None = None

    # Heuristics
    intent_gate: IntentGateSettings = Field(default_factory=IntentGateSettings)
    completeness: CompletenessSettings = Field(default_factory=CompletenessSettings)

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="TOOLCALL_",
        env_nested_delimiter="__",
    )

    # --- Resolved paths (computed from data_dir + relative paths) ---

    @property
    def resolved_registry_file(self) -> Path:
        """Get the full path to the tool registry file."""
        return Path(self.data_dir) / self.registry_file

    @property
    def resolved_field_mappings_file(self) -> Path:
        """Get the full path to the field mappings file."""
        if self.field_mappings_file is None:
            return DEFAULT_FIELD_MAPPINGS_PATH
        return Path(self.data_dir) / self.field_mappings_file

    def timeout_for(self, tool_name: str) -> float:
        """Get the invocation timeout for a tool, in seconds."""
        return self.tool_timeouts.get(tool_name, self.tool_timeout)
