"""
Field-type delta interpreter.

Every schema field type has a :class:`DeltaHandler` that knows how to cast a
raw change value into a typed delta, validate it, and combine it with the
current value for each :class:`~advancement_engine.changes.ChangeMode`.
Handlers are looked up by ``DataField.type_name`` in a :class:`DeltaRegistry`,
so new field types are supported by registering a handler; the dispatch in
:class:`DeltaInterpreter` never changes.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from .changes import Change, ChangeMode
from .fields import CharacterSchema, DataField, NumberField, ProficiencyField, StringField

logger = logging.getLogger("advancement-engine.deltas")


class DeltaError(Exception):
    """Raised when a change value cannot be used for its target field."""


class DeltaCastError(DeltaError):
    """The raw change value could not be converted for the field type."""


class DeltaValidationError(DeltaError):
    """The cast delta failed the field type's sanity checks."""


class _Unchanged:
    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = _Unchanged()


class DeltaHandler:
    """Cast, validate and apply behaviour for one field type.

    ``supported_modes`` lists the modes beyond OVERRIDE that make sense for
    the type; OVERRIDE is always available.
    """

    supported_modes: frozenset[ChangeMode] = frozenset()

    def supports(self, mode: ChangeMode) -> bool:
        return mode is ChangeMode.OVERRIDE or mode in self.supported_modes

    def cast(self, field: DataField, raw: Any) -> Any:
        return raw

    def validate(self, field: DataField, delta: Any) -> None:
        return None

    def apply(self, mode: ChangeMode, field: DataField, current: Any, delta: Any) -> Any:
        method = getattr(self, f"apply_{mode.name.lower()}")
        return method(field, current, delta)

    def apply_add(self, field: DataField, current: Any, delta: Any) -> Any:
        return UNCHANGED

    def apply_multiply(self, field: DataField, current: Any, delta: Any) -> Any:
        return UNCHANGED

    def apply_override(self, field: DataField, current: Any, delta: Any) -> Any:
        return delta

    def apply_upgrade(self, field: DataField, current: Any, delta: Any) -> Any:
        return UNCHANGED

    def apply_downgrade(self, field: DataField, current: Any, delta: Any) -> Any:
        return UNCHANGED


class AnyDelta(DeltaHandler):
    """Untyped values can only be replaced."""


class NumberDelta(DeltaHandler):
    supported_modes = frozenset({
        ChangeMode.ADD, ChangeMode.MULTIPLY, ChangeMode.UPGRADE, ChangeMode.DOWNGRADE,
    })

    def cast(self, field: DataField, raw: Any) -> Any:
        if isinstance(raw, bool):
            raise DeltaCastError(f"Boolean {raw!r} is not a number")
        if isinstance(raw, (int, float)):
            value = raw
        elif isinstance(raw, str):
            try:
                value = float(raw.strip()) if any(c in raw for c in ".eE") else int(raw.strip())
            except ValueError as e:
                raise DeltaCastError(f"Cannot read {raw!r} as a number") from e
        else:
            raise DeltaCastError(f"Cannot read {type(raw).__name__} as a number")
        if isinstance(field, NumberField) and field.integer and isinstance(value, float) and value.is_integer():
            value = int(value)
        return value

    def validate(self, field: DataField, delta: Any) -> None:
        if not math.isfinite(delta):
            raise DeltaValidationError(f"Numeric delta must be finite, got {delta!r}")

    def apply_add(self, field, current, delta):
        return (current or 0) + delta

    def apply_multiply(self, field, current, delta):
        return (current or 0) * delta

    def apply_upgrade(self, field, current, delta):
        if current is None or delta > current:
            return delta
        return UNCHANGED

    def apply_downgrade(self, field, current, delta):
        if current is None or delta < current:
            return delta
        return UNCHANGED


class ProficiencyDelta(NumberDelta):
    """Proficiency multipliers upgrade and downgrade by tier ranking."""

    supported_modes = frozenset({ChangeMode.UPGRADE, ChangeMode.DOWNGRADE})

    def validate(self, field: DataField, delta: Any) -> None:
        super().validate(field, delta)
        if delta not in ProficiencyField.TIERS:
            raise DeltaValidationError(
                f"Proficiency multiplier must be one of {ProficiencyField.TIERS}, got {delta!r}"
            )

    @staticmethod
    def rank(value: Any) -> int:
        try:
            return ProficiencyField.TIERS.index(value)
        except ValueError:
            return -1

    def apply_upgrade(self, field, current, delta):
        if current is None or self.rank(delta) > self.rank(current):
            return delta
        return UNCHANGED

    def apply_downgrade(self, field, current, delta):
        if current is None or self.rank(delta) < self.rank(current):
            return delta
        return UNCHANGED


class StringDelta(DeltaHandler):
    supported_modes = frozenset({ChangeMode.ADD})

    def cast(self, field: DataField, raw: Any) -> Any:
        if raw is None or isinstance(raw, (dict, list)):
            raise DeltaCastError(f"Cannot read {raw!r} as a string")
        return str(raw)

    def validate(self, field: DataField, delta: Any) -> None:
        if isinstance(field, StringField) and field.choices and delta not in field.choices:
            raise DeltaValidationError(f"'{delta}' is not one of {', '.join(field.choices)}")

    def apply_add(self, field, current, delta):
        return f"{current or ''}{delta}"


class BooleanDelta(DeltaHandler):
    supported_modes = frozenset({ChangeMode.UPGRADE, ChangeMode.DOWNGRADE})

    def cast(self, field: DataField, raw: Any) -> Any:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, (int, float)) and raw in (0, 1):
            return bool(raw)
        if isinstance(raw, str) and raw.strip().lower() in ("true", "false", "1", "0"):
            return raw.strip().lower() in ("true", "1")
        raise DeltaCastError(f"Cannot read {raw!r} as a boolean")

    def apply_upgrade(self, field, current, delta):
        if current is None or delta > current:
            return delta
        return UNCHANGED

    def apply_downgrade(self, field, current, delta):
        if current is None or delta < current:
            return delta
        return UNCHANGED


class SetDelta(DeltaHandler):
    """Sets hold unique strings; stored sorted so the overlay stays deterministic."""

    supported_modes = frozenset({ChangeMode.ADD})

    def cast(self, field: DataField, raw: Any) -> Any:
        if isinstance(raw, str):
            parts = [p.strip() for p in raw.split(",")]
        elif isinstance(raw, (list, tuple, set, frozenset)):
            parts = [str(p).strip() for p in raw]
        else:
            raise DeltaCastError(f"Cannot read {raw!r} as a set")
        return sorted(set(parts))

    def validate(self, field: DataField, delta: Any) -> None:
        if any(not p for p in delta):
            raise DeltaValidationError("Set delta contains an empty entry")

    def apply_add(self, field, current, delta):
        return sorted(set(current or ()) | set(delta))

    def apply_override(self, field, current, delta):
        return list(delta)


class ArrayDelta(DeltaHandler):
    """Arrays may already repeat values; a single delta may not."""

    supported_modes = frozenset({ChangeMode.ADD})

    def cast(self, field: DataField, raw: Any) -> Any:
        if raw is None:
            raise DeltaCastError("Cannot read None as an array")
        if isinstance(raw, (list, tuple)):
            return list(raw)
        return [raw]

    def validate(self, field: DataField, delta: Any) -> None:
        seen: list[Any] = []
        for entry in delta:
            if entry in seen:
                raise DeltaValidationError(f"Array delta repeats {entry!r}")
            seen.append(entry)

    def apply_add(self, field, current, delta):
        return list(current or []) + delta


class ObjectDelta(DeltaHandler):
    """Nested records: ADD merges keys into the current record."""

    supported_modes = frozenset({ChangeMode.ADD})

    def cast(self, field: DataField, raw: Any) -> Any:
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise DeltaCastError(f"Cannot parse {raw!r} as a record: {e}") from e
        if not isinstance(raw, dict):
            raise DeltaCastError(f"Cannot read {type(raw).__name__} as a record")
        return raw

    def apply_add(self, field, current, delta):
        return {**(current or {}), **delta}


class DeltaRegistry:
    """Field type name -> handler."""

    def __init__(self) -> None:
        self._handlers: dict[str, DeltaHandler] = {}

    def register(self, type_name: str, handler: DeltaHandler) -> None:
        self._handlers[type_name] = handler

    def get(self, type_name: str) -> DeltaHandler:
        return self._handlers.get(type_name) or self._handlers.get("any") or AnyDelta()

    def __contains__(self, type_name: str) -> bool:
        return type_name in self._handlers

    @classmethod
    def default(cls) -> "DeltaRegistry":
        registry = cls()
        registry.register("any", AnyDelta())
        registry.register("number", NumberDelta())
        registry.register("proficiency", ProficiencyDelta())
        registry.register("string", StringDelta())
        registry.register("boolean", BooleanDelta())
        registry.register("set", SetDelta())
        registry.register("array", ArrayDelta())
        registry.register("object", ObjectDelta())
        return registry


class DeltaInterpreter:
    """Apply single changes to current values using the registered handlers."""

    def __init__(self, schema: CharacterSchema, registry: DeltaRegistry) -> None:
        self.schema = schema
        self.registry = registry

    def apply(self, change: Change, current: Any, patch: dict[str, Any]) -> bool:
        """Fold one change into ``patch``.

        Args:
            change: The change to apply.
            current: Current value at ``change.key`` (None when unset).
            patch: Flat ``{key: value}`` accumulator updated in place.

        Returns:
            True if the patch was modified. Invalid changes are logged and
            skipped; they never raise.
        """
        field = self.schema.get_field(change.key)
        if field is None:
            logger.warning(f"Skipping change from {change.advancement}: unknown key '{change.key}'")
            return False

        handler = self.registry.get(field.type_name)
        if not handler.supports(change.mode):
            logger.warning(
                f"Skipping change from {change.advancement}: mode {change.mode.name} "
                f"is not supported for {field.type_name} field '{change.key}'"
            )
            return False

        try:
            delta = handler.cast(field, change.value)
            handler.validate(field, delta)
        except DeltaError as e:
            logger.warning(f"Skipping change from {change.advancement} on '{change.key}': {e}")
            return False

        if current is None:
            current = field.initial
        result = handler.apply(change.mode, field, current, delta)
        if result is UNCHANGED:
            return False
        patch[change.key] = result
        logger.debug(f"{change.mode.name} {change.key} = {result!r} ({change.advancement})")
        return True
