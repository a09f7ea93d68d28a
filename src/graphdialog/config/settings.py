"""Settings configuration models.

Engine-wide defaults and the file-level dialog configuration.
"""

from typing import Literal

from pydantic import BaseModel, Field

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EngineSettings(BaseModel):
    """Runtime defaults used by the step pipeline and the dialog facade."""

    invalid_message: str = Field(
        default="Invalid value",
        description="Sent when a validation entry has no invalid_msg",
    )
    end_message: str = Field(default="Bye bye!", description="Sent by end nodes without text")
    retry_message: str = Field(
        default="Sorry, I didn't get that. Please try again.",
        description="Sent when a prompt answer cannot be recognised",
    )
    score_threshold: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Default intent score threshold"
    )
    max_steps_per_turn: int = Field(
        default=100, gt=0, description="Node visits allowed in one turn without suspending"
    )
    session_lock_ttl: int = Field(
        default=3600, gt=0, description="Seconds an idle session lock is kept"
    )
    log_level: LogLevel = Field(default="INFO", description="Logging level for the CLI")


class DialogConfig(BaseModel):
    """Contents of a ``graphdialog.yaml`` file."""

    graph: str | None = Field(default=None, description="Path to the root graph spec")
    scenarios: str | None = Field(default=None, description="Directory holding sub-flows")
    handlers_module: str | None = Field(
        default=None, description="Module imported to register handlers"
    )
    settings: EngineSettings = Field(default_factory=EngineSettings)
