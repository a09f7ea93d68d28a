"""Session state owned by the host runtime.

The engine reads and writes these fields at every pipeline stage; hosts
persist the model between turns with ``model_dump`` / ``model_validate``.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NodeFlags(BaseModel):
    """Per-session transient flags for one node."""

    needs_revalidation: bool = False
    skip_prompt: bool = False
    sent: bool = False


class DialogFrame(BaseModel):
    """An enclosing dialog waiting for a nested block to finish."""

    block_id: str | None = Field(description="Block the enclosing dialog runs in (None = top)")
    return_node_id: str = Field(description="Node that entered the nested block")


class SessionState(BaseModel):
    """Per-conversation position and variable state."""

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    current_node_id: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)
    last_message: str | None = None
    last_interaction: datetime | None = None

    # Transient turn signals
    repeat: bool = False
    override_next_id: str | None = None

    awaiting_reply: bool = False
    chat_started: bool = False
    node_flags: dict[str, NodeFlags] = Field(default_factory=dict)
    frames: list[DialogFrame] = Field(default_factory=list)
    active_block: str | None = None
    generation: int = 0

    def flags_for(self, node_id: str) -> NodeFlags:
        """Get (creating if needed) the transient flags of a node in the active scope."""
        key = self.flag_key(node_id)
        flags = self.node_flags.get(key)
        if flags is None:
            flags = NodeFlags()
            self.node_flags[key] = flags
        return flags

    def flag_key(self, node_id: str) -> str:
        return f"{self.active_block}/{node_id}" if self.active_block else node_id

    def clear(self) -> None:
        """Reset everything except the session id and the generation counter."""
        self.current_node_id = None
        self.variables = {}
        self.last_message = None
        self.last_interaction = None
        self.repeat = False
        self.override_next_id = None
        self.awaiting_reply = False
        self.chat_started = False
        self.node_flags = {}
        self.frames = []
        self.active_block = None


def create_session_state(
    session_id: str | None = None,
    variables: dict[str, Any] | None = None,
) -> SessionState:
    """Create an empty session state."""
    state = SessionState(variables=dict(variables or {}))
    if session_id:
        state.session_id = session_id
    return state
