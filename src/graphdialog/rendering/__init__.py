from graphdialog.rendering.renderer import PlainRenderer

__all__ = ["PlainRenderer"]
