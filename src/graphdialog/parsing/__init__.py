"""Value parsers applied to responses before validation"""

from graphdialog.parsing.registry import ParserRegistry, register_parser

__all__ = ["ParserRegistry", "register_parser"]
