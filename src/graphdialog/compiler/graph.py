"""Compiled, immutable node graph."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from graphdialog.core.interfaces import Handler
from graphdialog.core.types import ModelRef, Node


@dataclass(frozen=True)
class NodeGraph:
    """Arena of compiled nodes addressed by id.

    All mappings are read-only views; nodes are frozen. Per-session flags
    live in SessionState, never here.
    """

    id: str
    version: str
    root_id: str | None
    nodes: Mapping[str, Node]
    models: Mapping[str, ModelRef] = field(default_factory=lambda: MappingProxyType({}))
    handlers: Mapping[str, Handler] = field(default_factory=lambda: MappingProxyType({}))
    blocks: Mapping[str, "NodeGraph"] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def root(self) -> Node:
        if self.root_id is None:
            raise LookupError(f"Graph '{self.id}' has no root node, only blocks")
        return self.nodes[self.root_id]

    def get(self, node_id: str | None) -> Node | None:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def get_block(self, block_id: str) -> "NodeGraph | None":
        """Look up a block by its own id or its ``<parent>:<block>`` id."""
        block = self.blocks.get(block_id)
        if block is None:
            block = self.blocks.get(f"{self.id}:{block_id}")
        return block

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)

    def describe(self) -> list[dict[str, Any]]:
        """Flat, declaration-ordered summary of the graph's nodes."""
        return [
            {
                "id": node.id,
                "name": node.name,
                "type": node.type_name,
                "parent": node.parent_id,
                "next": node.next_id,
                "steps": len(node.step_ids),
                "scenarios": len(node.scenarios),
            }
            for node in self.nodes.values()
        ]
