"""Raw graph spec models.

These validate the shape of a graph spec before compilation. Unknown node
fields are preserved so custom node types can carry their own payload.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ModelSpec(BaseModel):
    """A scoring model reference."""

    name: str = Field(description="Model name referenced by score nodes")
    url: str = Field(default="", description="Scoring endpoint")


class ScenarioSpec(BaseModel):
    """A conditional branch: target node id or an inline list of steps."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    condition: str | None = Field(default=None, description="Rule expression")
    node_id: str | None = Field(default=None, alias="nodeId", description="Direct target")
    steps: list["NodeSpec"] = Field(default_factory=list, description="Steps to enter")


class NodeSpec(BaseModel):
    """One node of the raw graph tree."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str | None = Field(default=None, description="Unique node id (assigned if absent)")
    name: str | None = Field(default=None, description="Display name (defaults to id)")
    type: str | None = Field(default=None, description="Node type name")
    varname: str | None = Field(default=None, description="Variable bound to the response")
    additional_varnames: list[str] = Field(
        default_factory=list,
        alias="additionalVarnames",
        description="Alias variable names",
    )
    data: dict[str, Any] = Field(default_factory=dict, description="Type-specific payload")
    steps: list["NodeSpec"] = Field(default_factory=list, description="Child steps")
    scenarios: list[ScenarioSpec] = Field(default_factory=list, description="Branches")
    sub_scenario: str | None = Field(
        default=None,
        alias="subScenario",
        description="Sub-flow identifier merged into this node",
    )


class GraphSpec(BaseModel):
    """Top-level graph spec: a root node tree and/or independent blocks."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(default="", description="Graph identifier")
    version: str | int | float | None = Field(default=None, description="Explicit version")
    models: list[ModelSpec] = Field(default_factory=list, description="Scoring models")
    root: NodeSpec | None = Field(default=None, description="Root node tree")
    blocks: list[dict[str, Any]] | None = Field(
        default=None, description="Independent embeddable sub-graphs"
    )
    shared_data: dict[str, Any] = Field(
        default_factory=dict,
        alias="sharedData",
        description="Merged under every block",
    )

    @model_validator(mode="after")
    def _require_root_or_blocks(self) -> "GraphSpec":
        if self.root is None and not self.blocks:
            raise ValueError("graph spec needs a 'root' node or a 'blocks' list")
        if self.blocks:
            for block in self.blocks:
                if not block.get("id"):
                    raise ValueError("every block needs an 'id'")
        return self


ScenarioSpec.model_rebuild()
NodeSpec.model_rebuild()
