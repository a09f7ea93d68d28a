"""Thread-safe registries for response validators and named predicates"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from graphdialog.core.registry import NamedRegistry

logger = logging.getLogger(__name__)

# A validator receives the (parsed) response and the entry's ``setup`` map.
Validator = Callable[[Any, Mapping[str, Any]], bool]

# A predicate is the Python side of a ``function`` validator: value -> bool.
Predicate = Callable[[Any], bool]


@dataclass
class ValidationOutcome:
    """Result of running a node's validation list."""

    valid: bool
    failed: dict[str, Any] = field(default_factory=dict)


class ValidatorRegistry(NamedRegistry[Validator]):
    """
    Thread-safe registry of validators keyed by validation ``type``.

    Usage:
        @register_validator("postcode")
        def validate_postcode(value, setup):
            return bool(re.fullmatch(setup.get("pattern", r"\\d{5}"), str(value)))
    """

    kind = "validator"
    _default_instance: Optional["ValidatorRegistry"] = None

    @classmethod
    def get_default(cls) -> "ValidatorRegistry":
        """Get the default registry, populated with the built-in validators."""
        if cls._default_instance is None:
            cls._default_instance = cls()
            from graphdialog.validation.validators import register_builtin_validators

            register_builtin_validators(cls._default_instance)
        return cls._default_instance

    def validate(self, entries: Sequence[Mapping[str, Any]], value: Any) -> ValidationOutcome:
        """
        Apply validation entries in order, stopping at the first failure.

        Args:
            entries: ``[{"type": ..., "setup": {...}}, ...]`` from node data
            value: Parsed response

        Returns:
            ValidationOutcome with the failing entry, if any
        """
        for entry in entries:
            validator_type = entry.get("type", "")
            setup = entry.get("setup") or {}
            validator = self.get(validator_type)
            if validator is None:
                logger.warning(
                    f"Unknown validator type '{validator_type}', treating as failed",
                    extra={"validator_type": validator_type},
                )
                return ValidationOutcome(valid=False, failed=dict(entry))
            if not validator(value, setup):
                logger.debug(
                    f"Validation '{validator_type}' failed",
                    extra={"validator_type": validator_type},
                )
                return ValidationOutcome(valid=False, failed=dict(entry))
        return ValidationOutcome(valid=True)


class PredicateRegistry(NamedRegistry[Predicate]):
    """
    Registry for named predicates used by ``function`` validators.

    Usage:
        @register_predicate("is_even")
        def is_even(value) -> bool:
            return int(value) % 2 == 0
    """

    kind = "predicate"
    _default_instance: Optional["PredicateRegistry"] = None

    @classmethod
    def get_default(cls) -> "PredicateRegistry":
        if cls._default_instance is None:
            cls._default_instance = cls()
        return cls._default_instance


def register_validator(name: str):
    """Decorator registering a validator type in the default ValidatorRegistry."""
    return ValidatorRegistry.get_default().register(name)


def register_predicate(name: str):
    """Decorator registering a predicate in the default PredicateRegistry."""
    return PredicateRegistry.get_default().register(name)
