from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import date
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from letter_logic.graph.formatting import FormatOptions
from letter_logic.graph.paths import PathPart, join_path, split_path


DataType = Literal["string", "number", "boolean", "date", "array", "object"]


class VariableDefinition(BaseModel):
    """Catalog entry for a letter variable; unknown catalog fields are ignored."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    key: str
    name: str | None = None
    description: str | None = None
    data_type: DataType = "string"
    group: str | None = None
    format: FormatOptions | None = None
    required: bool = False
    default_value: Any = None


class Scope:
    """One layer of name bindings chained to its parent."""

    __slots__ = ("bindings", "parent")

    def __init__(self, bindings: Mapping[str, object] | None = None, parent: Scope | None = None) -> None:
        self.bindings: dict[str, object] = dict(bindings or {})
        self.parent = parent

    def lookup(self, name: str) -> tuple[bool, object]:
        scope: Scope | None = self
        while scope is not None:
            if name in scope.bindings:
                return True, scope.bindings[name]
            scope = scope.parent
        return False, None


class VariableContext:
    """
    Request-scoped variable state.

    Lookup order is innermost scope first, then data merged by data nodes
    (keyed by namespace), then the read-only input data. The input mapping is
    deep-copied so evaluation never mutates caller data.
    """

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        *,
        definitions: Iterable[VariableDefinition] = (),
        as_of: date | None = None,
        locale: str = "en-US",
    ) -> None:
        self._data: dict[str, Any] = copy.deepcopy(dict(data or {}))
        self._fetched: dict[str, Any] = {}
        self._root = Scope()
        self._current = self._root
        self._definitions: dict[str, VariableDefinition] = {}
        for definition in definitions:
            self.define(definition)
        self.as_of = as_of or date.today()
        self.locale = locale

    @property
    def data(self) -> Mapping[str, Any]:
        return MappingProxyType(self._data)

    @property
    def scope(self) -> Scope:
        return self._current

    def define(self, definition: VariableDefinition) -> None:
        self._definitions[definition.key] = definition

    def definition(self, name: str) -> VariableDefinition | None:
        return self._definitions.get(name)

    def is_required(self, name: str) -> bool:
        definition = self._definitions.get(name)
        return bool(definition and definition.required)

    def lookup(self, name: str | tuple[PathPart, ...]) -> tuple[bool, object]:
        parts = split_path(name) if isinstance(name, str) else tuple(name)
        if not parts:
            return False, None

        head, rest = parts[0], parts[1:]
        found, value = False, None
        if isinstance(head, str):
            found, value = self._current.lookup(head)
            if not found and head in self._fetched:
                found, value = True, self._fetched[head]
            if not found and head in self._data:
                found, value = True, self._data[head]

        if found:
            found, value = _descend(value, rest)
        if not found:
            definition = self._definitions.get(join_path(parts))
            if definition is not None and definition.default_value is not None:
                return True, definition.default_value
        return found, value

    def resolve(self, name: str | tuple[PathPart, ...]) -> object:
        _, value = self.lookup(name)
        return value

    def set_variable(self, name: str, value: object) -> None:
        self._current.bindings[name] = value

    def merge_fetched(self, namespace: str, value: object) -> None:
        self._fetched[namespace] = value

    @contextmanager
    def child_scope(self, bindings: Mapping[str, object] | None = None) -> Iterator[Scope]:
        previous = self._current
        self._current = Scope(bindings, parent=previous)
        try:
            yield self._current
        finally:
            self._current = previous

    def derived_variables(self) -> dict[str, object]:
        return copy.deepcopy(self._root.bindings)

    def snapshot(self) -> dict[str, Any]:
        merged = copy.deepcopy(self._data)
        merged.update(copy.deepcopy(self._fetched))
        return merged


def _descend(value: object, parts: tuple[PathPart, ...]) -> tuple[bool, object]:
    current = value
    for index, part in enumerate(parts):
        if isinstance(current, Mapping):
            if part in current:
                current = current[part]
                continue
            if isinstance(part, int) and str(part) in current:
                current = current[str(part)]
                continue
            return False, None
        if isinstance(current, (list, tuple)):
            if isinstance(part, int):
                if 0 <= part < len(current):
                    current = current[part]
                    continue
                return False, None
            # A field name applied to an array plucks it from every element.
            plucked: list[object] = []
            for item in current:
                found, item_value = _descend(item, parts[index:])
                if found:
                    plucked.append(item_value)
            return True, plucked
        return False, None
    return True, current
