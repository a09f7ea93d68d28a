"""Graph compilation."""

from graphdialog.compiler.builder import GraphBuilder, compile_graph
from graphdialog.compiler.graph import NodeGraph

__all__ = ["GraphBuilder", "NodeGraph", "compile_graph"]
