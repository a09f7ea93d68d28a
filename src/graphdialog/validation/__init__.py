"""Validation module for GraphDialog"""

from graphdialog.validation.registry import (
    PredicateRegistry,
    ValidationOutcome,
    ValidatorRegistry,
    register_predicate,
    register_validator,
)

__all__ = [
    "PredicateRegistry",
    "ValidationOutcome",
    "ValidatorRegistry",
    "register_predicate",
    "register_validator",
]
