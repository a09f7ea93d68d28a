"""Per-turn step pipeline."""

from graphdialog.pipeline.step_pipeline import StepPipeline

__all__ = ["StepPipeline"]
