"""Unit tests for GraphBuilder and the compiled NodeGraph."""

import copy
import dataclasses

import pytest

from graphdialog.compiler.builder import GraphBuilder, compile_graph
from graphdialog.core.errors import BuildError, BuildErrorReason
from graphdialog.core.types import NodeType
from graphdialog.utils.hashing import spec_digest
from tests.factories import prompt_node, sequence, text_node


def quote_order(context, data):
    return {"assignments": {"total": 10}}


@pytest.fixture
def builder(handler_registry, scenario_source) -> GraphBuilder:
    handler_registry.add("quote_order", quote_order)
    return GraphBuilder(scenario_source=scenario_source, handler_source=handler_registry)


class TestIdAssignment:
    @pytest.mark.asyncio
    async def test_ids_follow_declaration_order(self, builder):
        """Test anonymous nodes get _node_<n> in pre-order, scenarios last."""
        # Arrange
        spec = {
            "id": "g",
            "root": {
                "type": "sequence",
                "steps": [
                    {"type": "text", "data": {"text": "hi"}},
                    {
                        "type": "prompt",
                        "data": {"text": "ok?"},
                        "scenarios": [
                            {"condition": "x", "steps": [{"type": "text", "data": {"text": "x"}}]}
                        ],
                    },
                ],
            },
        }

        # Act
        graph = await builder.compile(spec)

        # Assert
        assert list(graph.nodes) == ["_node_1", "_node_2", "_node_3", "_node_4"]
        assert graph.root_id == "_node_1"
        assert graph.nodes["_node_2"].next_id == "_node_3"
        assert graph.nodes["_node_3"].prev_id == "_node_2"
        assert graph.nodes["_node_4"].parent_id == "_node_3"
        assert graph.nodes["_node_3"].scenarios[0].step_ids == ("_node_4",)
        assert graph.nodes["_node_3"].scenarios[0].target_id == "_node_4"

    @pytest.mark.asyncio
    async def test_counter_restarts_per_compile(self, builder):
        spec = {"root": {"type": "text", "data": {"text": "hi"}}}

        first = await builder.compile(spec)
        second = await builder.compile(spec)

        assert first.root_id == second.root_id == "_node_1"

    @pytest.mark.asyncio
    async def test_compiling_twice_is_structurally_identical(self, builder, simple_spec):
        first = await builder.compile(simple_spec)
        second = await builder.compile(simple_spec)

        assert first.describe() == second.describe()
        assert first.version == second.version
        for node_id, node in first.nodes.items():
            assert dict(node.data) == dict(second.nodes[node_id].data)

    @pytest.mark.asyncio
    async def test_duplicate_ids_fail(self, builder):
        spec = {"root": sequence("root", text_node("a", "one"), text_node("a", "two"))}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.DUPLICATE_NODE_ID
        assert exc_info.value.context["node_id"] == "a"


class TestNodeDefaults:
    @pytest.mark.asyncio
    async def test_name_and_varname_default_to_id(self, builder):
        graph = await builder.compile({"root": text_node("hello", "Hi")})

        node = graph.root
        assert node.name == "hello"
        assert node.varname == "hello"

    @pytest.mark.asyncio
    async def test_missing_type_is_sequence(self, builder):
        graph = await builder.compile({"root": {"id": "r", "steps": [text_node("a", "x")]}})

        assert graph.root.type is NodeType.SEQUENCE
        assert graph.root.type_name == "sequence"

    @pytest.mark.asyncio
    async def test_hero_card_and_custom_types(self, builder):
        spec = {
            "root": sequence(
                "root",
                {"id": "card", "type": "heroCard", "data": {"title": "Hi"}},
                {"id": "map", "type": "map", "zoom": 4, "data": {"zoom": 5, "lat": 1}},
            )
        }

        graph = await builder.compile(spec)

        assert graph.nodes["card"].type is NodeType.RICH_CARD
        assert graph.nodes["map"].type is NodeType.CUSTOM
        assert graph.nodes["map"].type_name == "map"
        # Unknown node fields merge into data; data wins
        assert dict(graph.nodes["map"].data) == {"zoom": 5, "lat": 1}

    @pytest.mark.asyncio
    async def test_aliases(self, builder):
        node = prompt_node("ask_size", "Size?", varname="size")
        node["additionalVarnames"] = ["pizza_size"]

        graph = await builder.compile({"root": node})

        assert graph.root.varname == "size"
        assert graph.root.additional_varnames == ("pizza_size",)


class TestImmutability:
    @pytest.mark.asyncio
    async def test_input_spec_is_not_mutated(self, builder, scenario_source, simple_spec):
        # Arrange
        scenario_source.scenarios["extra"] = {"type": "sequence", "steps": [text_node("t", "x")]}
        simple_spec["root"]["steps"].append({"id": "more", "subScenario": "extra"})
        simple_spec["root"]["steps"].append({"type": "text", "data": {"text": "anon"}})
        original = copy.deepcopy(simple_spec)

        # Act
        await builder.compile(simple_spec)

        # Assert
        assert simple_spec == original

    @pytest.mark.asyncio
    async def test_graph_is_read_only(self, builder, simple_spec):
        graph = await builder.compile(simple_spec)

        with pytest.raises(TypeError):
            graph.nodes["x"] = graph.root  # type: ignore[index]
        with pytest.raises(TypeError):
            graph.root.data["text"] = "changed"  # type: ignore[index]
        with pytest.raises(dataclasses.FrozenInstanceError):
            graph.root.name = "renamed"  # type: ignore[misc]


class TestReferences:
    @pytest.mark.asyncio
    async def test_unknown_scenario_target(self, builder):
        spec = {
            "root": sequence(
                "root",
                {"id": "a", "type": "text", "scenarios": [{"condition": "x", "nodeId": "ghost"}]},
            )
        }

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.UNRESOLVED_REFERENCE

    @pytest.mark.asyncio
    async def test_forward_scenario_target_resolves(self, builder):
        spec = {
            "root": sequence(
                "root",
                {"id": "a", "type": "text", "scenarios": [{"condition": "x", "nodeId": "c"}]},
                text_node("b", "b"),
                text_node("c", "c"),
            )
        }

        graph = await builder.compile(spec)

        assert graph.nodes["a"].scenarios[0].target_id == "c"

    @pytest.mark.asyncio
    async def test_unknown_block_reference(self, builder):
        spec = {"root": {"id": "enter", "type": "sequence", "data": {"block": "missing"}}}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.UNRESOLVED_REFERENCE


class TestHandlers:
    @pytest.mark.asyncio
    async def test_handler_resolved_at_compile_time(self, builder):
        spec = {"root": {"id": "quote", "type": "handler", "data": {"name": "quote_order"}}}

        graph = await builder.compile(spec)

        assert graph.handlers["quote_order"] is quote_order

    @pytest.mark.asyncio
    async def test_async_handler_source(self):
        """Test a HandlerSource may resolve handlers asynchronously."""

        class AsyncSource:
            async def load_handler(self, name):
                return quote_order if name == "quote_order" else None

        builder = GraphBuilder(handler_source=AsyncSource())
        spec = {"root": {"id": "quote", "type": "handler", "data": {"name": "quote_order"}}}

        graph = await builder.compile(spec)

        assert graph.handlers["quote_order"] is quote_order

    @pytest.mark.asyncio
    async def test_missing_handler(self, builder):
        spec = {"root": {"id": "h", "type": "handler", "data": {"name": "unknown"}}}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.HANDLER_LOAD_FAILED
        assert exc_info.value.context["handler"] == "unknown"

    @pytest.mark.asyncio
    async def test_handler_without_name(self, builder):
        spec = {"root": {"id": "h", "type": "handler", "data": {}}}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.HANDLER_LOAD_FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["js", "code"])
    async def test_inline_code_is_rejected(self, builder, key):
        """Test source strings in the spec are never evaluated."""
        spec = {
            "root": {
                "id": "h",
                "type": "handler",
                "data": {"name": "quote_order", key: "return 1"},
            }
        }

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.HANDLER_LOAD_FAILED


class TestSubflows:
    @pytest.mark.asyncio
    async def test_fragment_is_merged_into_node(self, builder, scenario_source):
        # Arrange
        scenario_source.scenarios["address"] = {
            "models": [{"name": "places", "url": "http://places"}],
            "type": "sequence",
            "steps": [prompt_node("ask_street", "Street?", varname="street")],
        }
        spec = {
            "id": "pizza",
            "models": [{"name": "intents", "url": "http://intents"}],
            "root": sequence("root", {"id": "delivery", "subScenario": "address"}),
        }

        # Act
        graph = await builder.compile(spec)

        # Assert
        delivery = graph.nodes["delivery"]
        assert delivery.type is NodeType.SEQUENCE
        assert delivery.subflow == "address"
        assert delivery.step_ids == ("ask_street",)
        assert graph.nodes["ask_street"].parent_id == "delivery"
        assert set(graph.models) == {"intents", "places"}
        assert scenario_source.requested == ["address"]

    @pytest.mark.asyncio
    async def test_fragment_root_is_used(self, builder, scenario_source):
        """Test a fragment shaped like a full graph contributes its root."""
        scenario_source.scenarios["greeting"] = {
            "id": "greeting",
            "version": "9",
            "root": {"type": "text", "data": {"text": "Hi there"}},
        }

        graph = await builder.compile({"root": {"id": "hello", "subScenario": "greeting"}})

        assert graph.root.id == "hello"
        assert graph.root.type is NodeType.TEXT
        assert graph.root.data["text"] == "Hi there"

    @pytest.mark.asyncio
    async def test_fragment_values_replace_node_values(self, builder, scenario_source):
        scenario_source.scenarios["ask"] = {"type": "prompt", "data": {"text": "New?"}}
        spec = {
            "root": {
                "id": "q",
                "type": "text",
                "subScenario": "ask",
                "data": {"text": "Old?", "type": "number"},
            }
        }

        graph = await builder.compile(spec)

        assert graph.root.type is NodeType.PROMPT
        assert dict(graph.root.data) == {"text": "New?", "type": "number"}

    @pytest.mark.asyncio
    async def test_later_models_overwrite_earlier(self, builder, scenario_source):
        scenario_source.scenarios["frag"] = {
            "models": [{"name": "intents", "url": "http://new"}],
            "type": "text",
        }
        spec = {
            "models": [{"name": "intents", "url": "http://old"}],
            "root": {"id": "r", "subScenario": "frag"},
        }

        graph = await builder.compile(spec)

        assert graph.models["intents"].url == "http://new"

    @pytest.mark.asyncio
    async def test_nested_subflow_cycle(self, builder, scenario_source):
        """Test a sub-flow that re-includes itself is rejected."""
        scenario_source.scenarios["loop"] = {
            "type": "sequence",
            "steps": [{"type": "sequence", "subScenario": "loop"}],
        }
        spec = {"root": sequence("root", {"id": "entry", "subScenario": "loop"})}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.GRAPH_CYCLE

    @pytest.mark.asyncio
    async def test_subflow_named_after_ancestor(self, builder):
        spec = {"root": sequence("checkout", {"id": "again", "subScenario": "checkout"})}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.GRAPH_CYCLE

    @pytest.mark.asyncio
    async def test_subflow_named_after_itself(self, builder):
        spec = {"root": {"id": "address", "subScenario": "address"}}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.GRAPH_CYCLE

    @pytest.mark.asyncio
    async def test_missing_fragment(self, builder):
        spec = {"root": {"id": "x", "subScenario": "nowhere"}}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(spec)

        assert exc_info.value.reason is BuildErrorReason.SCENARIO_LOAD_FAILED

    @pytest.mark.asyncio
    async def test_subflow_without_scenario_source(self, handler_registry):
        builder = GraphBuilder(handler_source=handler_registry)

        with pytest.raises(BuildError) as exc_info:
            await builder.compile({"root": {"id": "x", "subScenario": "address"}})

        assert exc_info.value.reason is BuildErrorReason.SCENARIO_LOAD_FAILED

    @pytest.mark.asyncio
    async def test_sibling_subflows_all_fetched(self, builder, scenario_source):
        scenario_source.scenarios.update(
            {
                "one": {"type": "text", "data": {"text": "1"}},
                "two": {"type": "text", "data": {"text": "2"}},
            }
        )
        spec = {
            "root": sequence(
                "root",
                {"id": "first", "subScenario": "one"},
                {"id": "second", "subScenario": "two"},
            )
        }

        graph = await builder.compile(spec)

        assert sorted(scenario_source.requested) == ["one", "two"]
        assert graph.nodes["first"].next_id == "second"


class TestVersion:
    @pytest.mark.asyncio
    async def test_explicit_version(self, builder, simple_spec):
        simple_spec["version"] = "2.1"

        graph = await builder.compile(simple_spec)

        assert graph.version == "2.1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("declared", "expected"), [(2, "2"), (0, "0"), (1.5, "1.5")])
    async def test_numeric_version(self, builder, simple_spec, declared, expected):
        simple_spec["version"] = declared

        graph = await builder.compile(simple_spec)

        assert graph.version == expected

    @pytest.mark.asyncio
    async def test_digest_version(self, builder, simple_spec):
        graph = await builder.compile(simple_spec)

        assert graph.version == spec_digest(simple_spec)


class TestBlocks:
    @pytest.fixture
    def block_spec(self):
        return {
            "id": "main",
            "sharedData": {"models": [{"name": "shared", "url": "http://shared"}]},
            "blocks": [
                {"id": "greet", "root": text_node("hi", "Hi from greet")},
                {
                    "id": "farewell",
                    "models": [{"name": "own", "url": "http://own"}],
                    "root": text_node("bye", "Bye from farewell"),
                },
            ],
            "root": {"id": "start", "type": "sequence", "data": {"block": "greet"}},
        }

    @pytest.mark.asyncio
    async def test_blocks_are_compiled_with_prefixed_ids(self, builder, block_spec):
        graph = await builder.compile(block_spec)

        assert set(graph.blocks) == {"main:greet", "main:farewell"}
        assert graph.get_block("greet") is graph.blocks["main:greet"]
        assert graph.get_block("main:farewell").id == "main:farewell"
        assert graph.get_block("unknown") is None

    @pytest.mark.asyncio
    async def test_shared_data_is_merged_under_blocks(self, builder, block_spec):
        """Test sharedData applies to every block and block fields win."""
        graph = await builder.compile(block_spec)

        assert set(graph.get_block("greet").models) == {"shared"}
        assert set(graph.get_block("farewell").models) == {"own"}

    @pytest.mark.asyncio
    async def test_block_only_graph(self, builder, block_spec):
        del block_spec["root"]

        graph = await builder.compile(block_spec)

        assert graph.root_id is None
        assert len(graph) == 0
        with pytest.raises(LookupError):
            _ = graph.root

    @pytest.mark.asyncio
    async def test_failing_block_fails_compile(self, builder, block_spec):
        block_spec["blocks"][1]["root"] = {
            "id": "h",
            "type": "handler",
            "data": {"name": "not_registered"},
        }

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(block_spec)

        assert exc_info.value.reason is BuildErrorReason.HANDLER_LOAD_FAILED

    @pytest.mark.asyncio
    async def test_duplicate_block_ids(self, builder, block_spec):
        block_spec["blocks"].append({"id": "greet", "root": text_node("x", "x")})

        with pytest.raises(BuildError) as exc_info:
            await builder.compile(block_spec)

        assert exc_info.value.reason is BuildErrorReason.DUPLICATE_NODE_ID


class TestMalformed:
    @pytest.mark.asyncio
    async def test_non_mapping(self, builder):
        with pytest.raises(BuildError) as exc_info:
            await builder.compile(["not", "a", "spec"])  # type: ignore[arg-type]

        assert exc_info.value.reason is BuildErrorReason.MALFORMED_SPEC

    @pytest.mark.asyncio
    async def test_no_root_and_no_blocks(self, builder):
        with pytest.raises(BuildError) as exc_info:
            await builder.compile({"id": "empty"})

        assert exc_info.value.reason is BuildErrorReason.MALFORMED_SPEC

    @pytest.mark.asyncio
    async def test_malformed_fragment(self, builder, scenario_source):
        scenario_source.scenarios["bad"] = {"type": "text", "steps": "not a list"}

        with pytest.raises(BuildError) as exc_info:
            await builder.compile({"root": {"id": "r", "subScenario": "bad"}})

        assert exc_info.value.reason is BuildErrorReason.MALFORMED_SPEC


@pytest.mark.asyncio
async def test_compile_graph_helper(handler_registry):
    graph = await compile_graph(
        {"id": "g", "root": text_node("a", "hi")}, handler_source=handler_registry
    )

    assert graph.id == "g"
    assert graph.describe() == [
        {
            "id": "a",
            "name": "a",
            "type": "text",
            "parent": None,
            "next": None,
            "steps": 0,
            "scenarios": 0,
        }
    ]


@pytest.mark.asyncio
async def test_scenario_source_is_optional_without_subflows(handler_registry):
    builder = GraphBuilder(handler_source=handler_registry)

    graph = await builder.compile({"root": text_node("a", "hi")})

    assert isinstance(graph.root.data["text"], str)

