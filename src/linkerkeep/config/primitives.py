"""Core configuration primitives for an analysis run.

These frozen dataclasses are what the analysis core consumes. Pydantic models at
the CLI/config-file boundary (``linkerkeep.config.models``) convert to these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Self

DEFAULT_MAX_DEPTH = 64


@dataclass(frozen=True)
class InstantiationApi:
    """
    A dynamic-instantiation API whose call sites seed the analysis.

    Attributes
    ----------
    declaring_type : str
        Full name of the type declaring the API method.
    method_name : str
        API method name; every overload bound to this type and name is scanned.
    type_argument_index : int
        Which generic type argument names the constructed type.
    value_argument_index : int
        Which ordinary argument carries the type-descriptor value.
    """

    declaring_type: str
    method_name: str
    type_argument_index: int = 0
    value_argument_index: int = 0

    @classmethod
    def parse(cls, qualified: str) -> Self:
        """Build an API from ``Namespace.Type.Method`` notation.

        Returns
        -------
        Self
            API descriptor with default argument positions.

        Raises
        ------
        ValueError
            If ``qualified`` has no type component.
        """
        declaring_type, sep, method_name = qualified.strip().rpartition(".")
        if not sep or not declaring_type or not method_name:
            message = f"expected Namespace.Type.Method, got {qualified!r}"
            raise ValueError(message)
        return cls(declaring_type=declaring_type, method_name=method_name)

    def __str__(self) -> str:
        return f"{self.declaring_type}.{self.method_name}"


ACTIVATOR_CREATE_INSTANCE = InstantiationApi("System.Activator", "CreateInstance")


@dataclass(frozen=True)
class ResolutionLimits:
    """Bounds applied to inter-procedural propagation."""

    max_depth: int = DEFAULT_MAX_DEPTH


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Settings for one analysis run.

    Attributes
    ----------
    apis : tuple[InstantiationApi, ...]
        Entry-point APIs to scan for.
    limits : ResolutionLimits
        Recursion bounds for the resolver.
    workers : int
        Thread count for resolving top-level call sites (1 = sequential).
    collect_failures : bool
        Attempt every call site and report all failures together instead of
        stopping at the first one.
    """

    apis: tuple[InstantiationApi, ...] = (ACTIVATOR_CREATE_INSTANCE,)
    limits: ResolutionLimits = field(default_factory=ResolutionLimits)
    workers: int = 1
    collect_failures: bool = False
