"""Deduplicate resolved types and group them by declaring assembly."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class TypeReference:
    """One concrete, loadable type identified by assembly and full type name."""

    assembly: str
    type_name: str

    def __str__(self) -> str:
        return f"[{self.assembly}]{self.type_name}"


class KeepList:
    """
    Assembly -> unique type names mapping handed to the emitter.

    Iteration and the accessor methods are sorted, so the rendered output is
    stable regardless of the order in which references were added.
    """

    def __init__(self, references: Iterable[TypeReference] = ()) -> None:
        self._types: dict[str, set[str]] = {}
        self.extend(references)

    def add(self, reference: TypeReference) -> None:
        self._types.setdefault(reference.assembly, set()).add(reference.type_name)

    def extend(self, references: Iterable[TypeReference]) -> None:
        for reference in references:
            self.add(reference)

    def merge(self, other: KeepList) -> None:
        """Fold another keep-list into this one."""
        for assembly, names in other._types.items():
            self._types.setdefault(assembly, set()).update(names)

    def assemblies(self) -> list[str]:
        return sorted(self._types)

    def types_for(self, assembly: str) -> list[str]:
        return sorted(self._types.get(assembly, ()))

    def as_dict(self) -> dict[str, list[str]]:
        """
        Plain mapping view for JSON output and assertions.

        Returns
        -------
        dict[str, list[str]]
            Sorted type names keyed by sorted assembly name.
        """
        return {assembly: self.types_for(assembly) for assembly in self.assemblies()}

    def __iter__(self) -> Iterator[TypeReference]:
        for assembly in self.assemblies():
            for name in self.types_for(assembly):
                yield TypeReference(assembly, name)

    def __contains__(self, reference: object) -> bool:
        if not isinstance(reference, TypeReference):
            return False
        return reference.type_name in self._types.get(reference.assembly, ())

    def __len__(self) -> int:
        return sum(len(names) for names in self._types.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeepList):
            return NotImplemented
        return self._types == other._types

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"KeepList({self.as_dict()!r})"


def aggregate(references: Iterable[TypeReference]) -> KeepList:
    """
    Collapse duplicate references and group them by assembly.

    Returns
    -------
    KeepList
        Deterministic keep-list for the given multiset of references.
    """
    return KeepList(references)
