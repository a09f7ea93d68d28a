"""Graph builder that compiles a raw spec into an immutable NodeGraph.

Compilation runs in two phases:

1. Expansion (async): sub-flow fragments are fetched and merged into the
   nodes that reference them, and handler callables are resolved. Sibling
   work fans out inside ``asyncio.TaskGroup``s; the first failure cancels
   the rest.
2. Indexing (sync): ids are assigned in declaration order and parent, prev,
   next and scenario references are resolved. This phase never awaits, so id
   assignment is deterministic regardless of fetch timing.
"""

import asyncio
import copy
import inspect
import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from graphdialog.actions.registry import HandlerRegistry
from graphdialog.compiler.graph import NodeGraph
from graphdialog.config.models import GraphSpec, NodeSpec
from graphdialog.core.errors import BuildError, BuildErrorReason
from graphdialog.core.interfaces import Handler, HandlerSource, ScenarioSource
from graphdialog.core.types import ModelRef, Node, NodeType, Scenario
from graphdialog.utils.hashing import spec_digest
from graphdialog.utils.merge import deep_merge

logger = logging.getLogger(__name__)

# Keys of a fetched fragment that describe the graph rather than the node
_FRAGMENT_GRAPH_KEYS = ("models", "version", "blocks", "sharedData")

# Inline source code is never evaluated
_INLINE_CODE_KEYS = ("js", "code")


def _first_error(error: BaseException) -> BaseException:
    """Unwrap (possibly nested) exception groups down to the first leaf."""
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error


class _Expansion:
    """Mutable state of one expansion run over a raw node tree."""

    def __init__(
        self,
        scenario_source: ScenarioSource | None,
        handler_source: HandlerSource,
    ) -> None:
        self.scenario_source = scenario_source
        self.handler_source = handler_source
        self.handlers: dict[str, Handler] = {}
        # Fragment models keyed by id() of the raw node dict that embedded them
        self.fragment_models: dict[int, list[dict[str, Any]]] = {}

    async def expand(self, node: dict[str, Any], ancestors: frozenset[str]) -> None:
        identities = set(ancestors)
        if node.get("id"):
            identities.add(node["id"])

        identifier = node.get("subScenario")
        if identifier:
            if identifier in identities:
                raise BuildError(
                    f"Recursive sub-flow '{identifier}' found under node '{node.get('id')}'",
                    reason=BuildErrorReason.GRAPH_CYCLE,
                    sub_scenario=identifier,
                    node_id=node.get("id"),
                )
            await self._embed(node, identifier)
            identities.add(identifier)
            if node.get("id"):
                identities.add(node["id"])

        async with asyncio.TaskGroup() as tg:
            if node.get("type") == NodeType.HANDLER.value:
                tg.create_task(self._resolve_handler(node))

            children = list(node.get("steps") or [])
            for scenario in node.get("scenarios") or []:
                if isinstance(scenario, dict):
                    children.extend(scenario.get("steps") or [])
            frozen = frozenset(identities)
            for child in children:
                if isinstance(child, dict):
                    tg.create_task(self.expand(child, frozen))

    async def _embed(self, node: dict[str, Any], identifier: str) -> None:
        if self.scenario_source is None:
            raise BuildError(
                f"Node '{node.get('id')}' references sub-flow '{identifier}' "
                "but no scenario source is configured",
                reason=BuildErrorReason.SCENARIO_LOAD_FAILED,
                sub_scenario=identifier,
            )

        logger.debug(
            f"Embedding sub-flow '{identifier}' into node '{node.get('id')}'",
            extra={"sub_scenario": identifier},
        )
        try:
            fragment = await self.scenario_source.load_scenario(identifier)
        except BuildError:
            raise
        except Exception as e:
            raise BuildError(
                f"Failed to load sub-flow '{identifier}': {e}",
                reason=BuildErrorReason.SCENARIO_LOAD_FAILED,
                sub_scenario=identifier,
            ) from e

        if not isinstance(fragment, Mapping):
            raise BuildError(
                f"Sub-flow '{identifier}' is not a mapping",
                reason=BuildErrorReason.MALFORMED_SPEC,
                sub_scenario=identifier,
            )

        fragment = copy.deepcopy(dict(fragment))
        models = list(fragment.get("models") or [])
        payload = fragment.get("root") if isinstance(fragment.get("root"), dict) else fragment
        payload = {k: v for k, v in payload.items() if k not in _FRAGMENT_GRAPH_KEYS}
        payload.pop("root", None)

        merged = deep_merge(node, payload)
        # Do not re-enter the same sub-flow when recursing into the merged node
        merged["subScenario"] = identifier
        node.clear()
        node.update(merged)
        if models:
            self.fragment_models[id(node)] = models

    async def _resolve_handler(self, node: dict[str, Any]) -> None:
        data = node.get("data") or {}
        node_id = node.get("id")
        for key in _INLINE_CODE_KEYS:
            if data.get(key):
                raise BuildError(
                    f"Handler node '{node_id}' carries inline '{key}' code; "
                    "register the handler by name instead",
                    reason=BuildErrorReason.HANDLER_LOAD_FAILED,
                    node_id=node_id,
                )

        name = data.get("name")
        if not name:
            raise BuildError(
                f"Handler node '{node_id}' has no data.name",
                reason=BuildErrorReason.HANDLER_LOAD_FAILED,
                node_id=node_id,
            )

        try:
            handler = self.handler_source.load_handler(name)
            if inspect.isawaitable(handler):
                handler = await handler
        except Exception as e:
            raise BuildError(
                f"Failed to load handler '{name}': {e}",
                reason=BuildErrorReason.HANDLER_LOAD_FAILED,
                handler=name,
            ) from e

        if handler is None or not callable(handler):
            raise BuildError(
                f"Handler '{name}' for node '{node_id}' could not be loaded",
                reason=BuildErrorReason.HANDLER_LOAD_FAILED,
                handler=name,
                node_id=node_id,
            )
        self.handlers[name] = handler

    def collect_models(self, node: dict[str, Any], into: list[dict[str, Any]]) -> None:
        """Gather fragment models in declaration order."""
        into.extend(self.fragment_models.get(id(node), ()))
        for child in node.get("steps") or []:
            if isinstance(child, dict):
                self.collect_models(child, into)
        for scenario in node.get("scenarios") or []:
            if isinstance(scenario, dict):
                for child in scenario.get("steps") or []:
                    if isinstance(child, dict):
                        self.collect_models(child, into)


class _Indexer:
    """Deterministic id assignment and relation wiring over a NodeSpec tree."""

    def __init__(self, graph_id: str, block_ids: frozenset[str] | None = None) -> None:
        self.graph_id = graph_id
        self.block_ids = block_ids
        self.counter = 1
        self.order: list[NodeSpec] = []
        self.parents: dict[str, str | None] = {}
        self.prevs: dict[str, str | None] = {}
        self.nexts: dict[str, str | None] = {}

    def assign_ids(self, spec: NodeSpec) -> None:
        """Pre-order walk: node, its steps, then each scenario's steps."""
        if not spec.id:
            spec.id = f"_node_{self.counter}"
            self.counter += 1
        if spec.id in self.parents:
            raise BuildError(
                f"Duplicate node id '{spec.id}' in graph '{self.graph_id}'",
                reason=BuildErrorReason.DUPLICATE_NODE_ID,
                node_id=spec.id,
            )
        self.parents.setdefault(spec.id, None)
        self.order.append(spec)

        for siblings in self._child_lists(spec):
            for child in siblings:
                self.assign_ids(child)
            self._link(spec.id, siblings)

    @staticmethod
    def _child_lists(spec: NodeSpec) -> list[list[NodeSpec]]:
        return [spec.steps] + [scenario.steps for scenario in spec.scenarios]

    def _link(self, parent_id: str, siblings: list[NodeSpec]) -> None:
        for index, child in enumerate(siblings):
            self.parents[child.id] = parent_id
            self.prevs[child.id] = siblings[index - 1].id if index > 0 else None
            self.nexts[child.id] = siblings[index + 1].id if index + 1 < len(siblings) else None

    def build_nodes(self) -> dict[str, Node]:
        nodes: dict[str, Node] = {}
        for spec in self.order:
            node_id = spec.id
            assert node_id is not None
            nodes[node_id] = Node(
                id=node_id,
                name=spec.name or node_id,
                type=NodeType.from_name(spec.type),
                type_name=spec.type or NodeType.SEQUENCE.value,
                varname=spec.varname or node_id,
                additional_varnames=tuple(spec.additional_varnames),
                data=MappingProxyType(self._node_data(spec)),
                step_ids=tuple(child.id for child in spec.steps if child.id),
                scenarios=tuple(self._scenarios(spec)),
                parent_id=self.parents.get(node_id),
                prev_id=self.prevs.get(node_id),
                next_id=self.nexts.get(node_id),
                subflow=spec.sub_scenario,
            )
        return nodes

    def _node_data(self, spec: NodeSpec) -> dict[str, Any]:
        # Unknown top-level node fields are exposed through data; data wins
        data = {**(spec.model_extra or {}), **spec.data}
        block = data.get("block")
        if block and self.block_ids is not None and block not in self.block_ids:
            raise BuildError(
                f"Node '{spec.id}' enters unknown block '{block}'",
                reason=BuildErrorReason.UNRESOLVED_REFERENCE,
                node_id=spec.id,
                block=block,
            )
        return copy.deepcopy(data)

    def _scenarios(self, spec: NodeSpec) -> list[Scenario]:
        scenarios = []
        for scenario in spec.scenarios:
            if scenario.node_id and scenario.node_id not in self.parents:
                raise BuildError(
                    f"Scenario on node '{spec.id}' targets unknown node '{scenario.node_id}'",
                    reason=BuildErrorReason.UNRESOLVED_REFERENCE,
                    node_id=spec.id,
                    target=scenario.node_id,
                )
            scenarios.append(
                Scenario(
                    condition=scenario.condition,
                    node_id=scenario.node_id,
                    step_ids=tuple(child.id for child in scenario.steps if child.id),
                )
            )
        return scenarios


class GraphBuilder:
    """Compiles graph specs into NodeGraphs.

    Args:
        scenario_source: Loads sub-flow fragments (required only when the
            spec uses ``subScenario``)
        handler_source: Resolves handler callables by name (defaults to the
            global HandlerRegistry)
    """

    def __init__(
        self,
        scenario_source: ScenarioSource | None = None,
        handler_source: HandlerSource | None = None,
    ) -> None:
        self.scenario_source = scenario_source
        # Registries define __len__; an empty one is falsy
        self.handler_source = (
            handler_source if handler_source is not None else HandlerRegistry.get_default()
        )

    async def compile(self, spec: Mapping[str, Any]) -> NodeGraph:
        """
        Compile a raw spec. The input mapping is never mutated.

        Raises:
            BuildError: On any failure; no partial graph is returned.
        """
        if not isinstance(spec, Mapping):
            raise BuildError(
                f"Graph spec must be a mapping, got {type(spec).__name__}",
                reason=BuildErrorReason.MALFORMED_SPEC,
            )
        try:
            graph = await self._build(copy.deepcopy(dict(spec)))
        except BaseExceptionGroup as group:
            raise _first_error(group) from None

        logger.info(
            f"Compiled graph '{graph.id}' version {graph.version}: "
            f"{len(graph.nodes)} nodes, {len(graph.blocks)} blocks",
            extra={"graph_id": graph.id, "version": graph.version},
        )
        return graph

    async def _build(self, raw: dict[str, Any], graph_id: str | None = None) -> NodeGraph:
        version = raw.get("version")
        if version is None or version == "":
            version = spec_digest(raw)
        spec = self._validate(raw)
        # Blocks resolve data.block through the top-level graph
        block_ids = None if graph_id else frozenset(b["id"] for b in spec.blocks or [])
        graph_id = graph_id or spec.id

        blocks: dict[str, NodeGraph] = {}
        if spec.blocks:
            blocks = await self._build_blocks(graph_id, spec)

        if spec.root is None:
            return NodeGraph(
                id=graph_id,
                version=str(version),
                root_id=None,
                nodes=MappingProxyType({}),
                models=MappingProxyType(self._models(spec, [])),
                blocks=MappingProxyType(blocks),
            )

        root_raw = raw["root"]
        expansion = _Expansion(self.scenario_source, self.handler_source)
        await expansion.expand(root_raw, frozenset({graph_id} if graph_id else ()))

        fragment_models: list[dict[str, Any]] = []
        expansion.collect_models(root_raw, fragment_models)

        # Re-validate: fetched fragments may carry malformed nodes
        try:
            root = NodeSpec.model_validate(root_raw)
        except ValidationError as e:
            raise BuildError(
                f"Malformed node tree in graph '{graph_id}': {e}",
                reason=BuildErrorReason.MALFORMED_SPEC,
            ) from e

        indexer = _Indexer(graph_id, block_ids)
        indexer.assign_ids(root)
        nodes = indexer.build_nodes()

        return NodeGraph(
            id=graph_id,
            version=str(version),
            root_id=root.id,
            nodes=MappingProxyType(nodes),
            models=MappingProxyType(self._models(spec, fragment_models)),
            handlers=MappingProxyType(dict(expansion.handlers)),
            blocks=MappingProxyType(blocks),
        )

    async def _build_blocks(self, graph_id: str, spec: GraphSpec) -> dict[str, NodeGraph]:
        """Build every block concurrently; any failure fails them all."""
        merged_blocks: dict[str, dict[str, Any]] = {}
        for block in spec.blocks or []:
            block_graph_id = f"{graph_id}:{block['id']}"
            if block_graph_id in merged_blocks:
                raise BuildError(
                    f"Duplicate block id '{block['id']}' in graph '{graph_id}'",
                    reason=BuildErrorReason.DUPLICATE_NODE_ID,
                    block=block["id"],
                )
            merged_blocks[block_graph_id] = deep_merge(spec.shared_data, block)

        tasks: dict[str, asyncio.Task[NodeGraph]] = {}
        async with asyncio.TaskGroup() as tg:
            for block_graph_id, merged in merged_blocks.items():
                tasks[block_graph_id] = tg.create_task(self._build(merged, block_graph_id))
        return {block_id: task.result() for block_id, task in tasks.items()}

    @staticmethod
    def _validate(raw: dict[str, Any]) -> GraphSpec:
        try:
            return GraphSpec.model_validate(raw)
        except ValidationError as e:
            raise BuildError(
                f"Malformed graph spec: {e}",
                reason=BuildErrorReason.MALFORMED_SPEC,
            ) from e

    @staticmethod
    def _models(spec: GraphSpec, fragment_models: list[dict[str, Any]]) -> dict[str, ModelRef]:
        # Later declarations overwrite earlier ones
        models: dict[str, ModelRef] = {}
        for model in spec.models:
            models[model.name] = ModelRef(name=model.name, url=model.url)
        for model in fragment_models:
            if isinstance(model, Mapping) and model.get("name"):
                models[model["name"]] = ModelRef(name=model["name"], url=model.get("url", ""))
        return models


async def compile_graph(
    spec: Mapping[str, Any],
    scenario_source: ScenarioSource | None = None,
    handler_source: HandlerSource | None = None,
) -> NodeGraph:
    """Compile a spec with a one-off GraphBuilder."""
    builder = GraphBuilder(scenario_source=scenario_source, handler_source=handler_source)
    return await builder.compile(spec)
