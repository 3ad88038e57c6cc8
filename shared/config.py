"""
Type-safe configuration for the plan compiler using Pydantic Settings.

This module provides a centralized, type-safe configuration system
that loads from environment variables and .env files.

Usage:
    from shared.config import config

    if depth > config.max_branch_depth:
        ...
"""
from typing import Any, Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ALLOWED_HOSTS: List[str] = [
    "api.slack.com",
    "hooks.slack.com",
    "api.github.com",
    "api.salesforce.com",
    "graph.microsoft.com",
    "api.hubspot.com",
    "api.stripe.com",
    "api.zapier.com",
    "jsonplaceholder.typicode.com",
]


class PlanCompilerConfig(BaseSettings):
    """
    Central configuration for the plan compiler.

    All configuration is loaded from environment variables or .env file.
    Provides type safety and validation at startup.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ============================================================================
    # Logging
    # ============================================================================

    log_level: str = Field(default="INFO", description="Log level for compiler loggers")

    # ============================================================================
    # Validation Policy
    # ============================================================================

    allowed_hosts: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_HOSTS),
        description="Hosts HTTP request steps may call (subdomains are allowed too)",
    )
    max_branch_depth: int = Field(
        default=16,
        ge=1,
        description="Maximum nesting of branch steps inside one another",
    )

    # ============================================================================
    # Node Synthesis
    # ============================================================================

    max_node_name_length: int = Field(default=50, ge=1, description="Node display names are truncated to this length")
    webhook_signature_header: str = Field(
        default="X-Hub-Signature-256",
        description="Header checked by webhook triggers with secretHmac enabled",
    )
    webhook_secret_variable: str = Field(
        default="webhook_secret",
        description="Engine variable holding the webhook signing secret",
    )
    filter_false_output_terminates: bool = Field(
        default=False,
        description="If True, the false output of a filter node is left unconnected instead of continuing to the next node",
    )

    # ============================================================================
    # Layout
    # ============================================================================

    layout_node_width: int = Field(default=240, description="Rendered node width")
    layout_node_height: int = Field(default=100, description="Rendered node height")
    layout_horizontal_spacing: int = Field(default=300, description="Distance between layout columns")
    layout_vertical_spacing: int = Field(default=150, description="Gap between nodes in one column")
    layout_start_x: int = Field(default=100, description="X coordinate of the first column")
    layout_start_y: int = Field(default=100, description="Y coordinate of the layout origin")

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("allowed_hosts")
    @classmethod
    def _normalize_hosts(cls, value: List[str]) -> List[str]:
        return [host.strip().lower() for host in value if host.strip()]

    # ============================================================================
    # Computed Properties
    # ============================================================================

    @property
    def layout_defaults(self) -> Dict[str, Any]:
        """Keyword arguments for LayoutOptions."""
        return {
            "node_width": self.layout_node_width,
            "node_height": self.layout_node_height,
            "horizontal_spacing": self.layout_horizontal_spacing,
            "vertical_spacing": self.layout_vertical_spacing,
            "start_x": self.layout_start_x,
            "start_y": self.layout_start_y,
        }


# ============================================================================
# Global Config Instance
# ============================================================================

config = PlanCompilerConfig()
