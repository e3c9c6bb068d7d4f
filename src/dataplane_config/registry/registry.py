"""
dataplane-config — parameter registry.

File: src/dataplane_config/registry/registry.py
Last updated: 2026-10-19

Purpose
- Compile parameter declarations into immutable field descriptors and answer
  name lookups (canonical names and legacy aliases) for every other stage.

What should be included in this file
- ``ParameterRegistry`` with case-insensitive, many-to-one alias lookup.
- ``RegistryError`` for construction-time failures.
- ``default_registry`` returning the process-wide registry.

Functional requirements
- Duplicate names/aliases, unknown rules, enums without choices, durations
  without a unit and defaults that fail coercion or validation are fatal.
- Lookups never mutate; the registry is read-only after construction.

Non-functional requirements
- Built once per process; lookups are dictionary hits.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator
from functools import lru_cache

from dataplane_config.registry.descriptors import FieldDescriptor, ParameterSpec, ValueKind
from dataplane_config.registry.parameters import PARAMETERS
from dataplane_config.resolution.coercion import CoercionError, coerce
from dataplane_config.resolution.validation import UnknownRuleError, resolve_rule, validate


class RegistryError(ValueError):
    """Raised when the parameter declarations are inconsistent."""


class ParameterRegistry:
    """Read-only catalogue of every configurable field."""

    def __init__(self, specs: Iterable[ParameterSpec]) -> None:
        descriptors: list[FieldDescriptor] = []
        by_key: dict[str, FieldDescriptor] = {}
        for spec in specs:
            descriptor = compile_descriptor(spec)
            for name in descriptor.names:
                key = name.lower()
                existing = by_key.get(key)
                if existing is not None:
                    raise RegistryError(
                        f"name {name!r} of {descriptor.name} already used by {existing.name}"
                    )
                by_key[key] = descriptor
            descriptors.append(descriptor)
        self._descriptors = tuple(descriptors)
        self._by_key = by_key

    def descriptor_for(self, name: str) -> FieldDescriptor | None:
        """Return the descriptor for a canonical name or alias, ignoring case."""

        return self._by_key.get(name.lower())

    def canonical_name_for(self, name: str) -> str | None:
        descriptor = self.descriptor_for(name)
        return None if descriptor is None else descriptor.name

    def all_descriptors(self) -> tuple[FieldDescriptor, ...]:
        return self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._by_key


def compile_descriptor(spec: ParameterSpec) -> FieldDescriptor:
    """Resolve rules and parse the default of one declaration."""

    if spec.kind is ValueKind.ENUM and not spec.choices:
        raise RegistryError(f"{spec.name}: enum parameter declares no allowed values")
    if spec.kind is ValueKind.DURATION and spec.unit is None:
        raise RegistryError(f"{spec.name}: duration parameter declares no unit scale")
    for alias in spec.aliases:
        # Lookup ignores case, so such an alias adds nothing and collides.
        if alias.lower() == spec.name.lower():
            raise RegistryError(f"{spec.name}: alias {alias!r} only differs from the name by case")

    try:
        validators = tuple(resolve_rule(rule) for rule in spec.rules)
    except UnknownRuleError as exc:
        raise RegistryError(f"{spec.name}: {exc}") from exc

    descriptor = FieldDescriptor(
        name=spec.name,
        kind=spec.kind,
        default=None,
        default_raw=spec.default,
        aliases=spec.aliases,
        unit=spec.unit,
        rules=spec.rules,
        validators=validators,
        choices=spec.choices,
        live_apply=spec.live_apply,
        description=spec.description,
    )
    if spec.default is None:
        return descriptor

    try:
        default = coerce(descriptor, spec.default)
    except CoercionError as exc:
        raise RegistryError(f"{spec.name}: default is malformed: {exc.reason}") from exc
    issue = validate(descriptor, default)
    if issue is not None:
        raise RegistryError(f"{spec.name}: default {spec.default!r} is invalid: {issue.reason}")
    return dataclasses.replace(descriptor, default=default)


@lru_cache(maxsize=1)
def default_registry() -> ParameterRegistry:
    """Return the process-wide registry of every agent parameter."""

    return ParameterRegistry(PARAMETERS)


__all__ = [
    "ParameterRegistry",
    "RegistryError",
    "compile_descriptor",
    "default_registry",
]
