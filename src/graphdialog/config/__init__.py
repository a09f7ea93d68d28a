"""Configuration module for GraphDialog."""

from graphdialog.config.loader import ConfigLoader, FileScenarioSource, load_spec
from graphdialog.config.models import GraphSpec, NodeSpec, ScenarioSpec
from graphdialog.config.settings import DialogConfig, EngineSettings

__all__ = [
    "ConfigLoader",
    "DialogConfig",
    "EngineSettings",
    "FileScenarioSource",
    "GraphSpec",
    "NodeSpec",
    "ScenarioSpec",
    "load_spec",
]
