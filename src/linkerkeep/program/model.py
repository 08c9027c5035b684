"""Immutable program model queried by call-site scanning and type-origin resolution.

The model is the narrow boundary between the analysis core and whatever compiler
frontend parsed and bound the target program. It exposes exactly what resolution
needs:

- every call expression with its bound target method, generic type arguments and
  argument expressions (in parameter order);
- the statically inferred type of any expression, including the declaring
  assembly of that type;
- method and local-variable declarations (parameters, type parameters,
  initializers).

Everything here is a frozen dataclass; a ``ProgramModel`` is never mutated after
construction and may be shared across worker threads.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

import networkx as nx

TOP_LEVEL_NODE = "<top-level>"


@dataclass(frozen=True)
class SourceLocation:
    """File position of a call site or declaration."""

    path: str
    line: int
    column: int = 0

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"


@dataclass(frozen=True)
class NamedType:
    """
    Named type, possibly a constructed generic.

    Attributes
    ----------
    full_name : str
        Metadata name as understood by the trimmer (e.g. ``Ns.Outer+Inner``).
    assembly : str
        Name of the declaring assembly.
    type_arguments : tuple[TypeSymbol, ...]
        Type arguments for constructed generics; empty otherwise.
    """

    full_name: str
    assembly: str
    type_arguments: tuple[TypeSymbol, ...] = ()

    @property
    def is_closed(self) -> bool:
        """True when no type parameter remains anywhere in the type."""
        return all(arg.is_closed for arg in self.type_arguments)

    def __str__(self) -> str:
        if not self.type_arguments:
            return self.full_name
        return f"{self.full_name}<{', '.join(str(arg) for arg in self.type_arguments)}>"


@dataclass(frozen=True)
class TypeParameter:
    """Open generic type parameter declared by a method or a type."""

    name: str
    owner_id: str
    owner_kind: Literal["method", "type"]
    ordinal: int

    @property
    def is_closed(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.name


TypeSymbol = NamedType | TypeParameter


@dataclass(frozen=True, kw_only=True)
class Expression:
    """Base for argument and initializer expressions."""

    text: str = ""
    static_type: TypeSymbol | None = None

    @property
    def kind(self) -> str:
        return "expression"

    def describe(self) -> str:
        """
        Short description used in diagnostics.

        Returns
        -------
        str
            Source text when known, otherwise the expression kind.
        """
        return self.text or f"<{self.kind}>"


@dataclass(frozen=True, kw_only=True)
class TypeOfExpression(Expression):
    """Type-literal expression (``typeof(T)``)."""

    target_type: TypeSymbol

    @property
    def kind(self) -> str:
        return "typeof"


@dataclass(frozen=True, kw_only=True)
class GetTypeExpression(Expression):
    """Runtime-type-of expression (``receiver.GetType()``)."""

    receiver: Expression

    @property
    def kind(self) -> str:
        return "get_type"


@dataclass(frozen=True, kw_only=True)
class LocalReference(Expression):
    """Read of a local variable."""

    local_id: str

    @property
    def kind(self) -> str:
        return "local"


@dataclass(frozen=True, kw_only=True)
class ParameterReference(Expression):
    """Read of a parameter of the enclosing method."""

    method_id: str
    ordinal: int

    @property
    def kind(self) -> str:
        return "parameter"


@dataclass(frozen=True, kw_only=True)
class OpaqueExpression(Expression):
    """Any expression shape the resolver does not interpret."""

    shape: str = "other"

    @property
    def kind(self) -> str:
        return self.shape


@dataclass(frozen=True)
class MethodSymbol:
    """Declared method with its parameter and type-parameter names."""

    id: str
    declaring_type: str
    name: str
    parameters: tuple[str, ...] = ()
    type_parameters: tuple[str, ...] = ()
    location: SourceLocation | None = None

    @property
    def display_name(self) -> str:
        return f"{self.declaring_type}.{self.name}"


@dataclass(frozen=True)
class LocalVariable:
    """Local variable with its declaration initializer and later assignments."""

    id: str
    name: str
    method_id: str
    initializer: Expression | None = None
    assignments: tuple[Expression, ...] = ()


@dataclass(frozen=True)
class MethodRef:
    """Bound identity of a call target."""

    method_id: str
    declaring_type: str
    name: str

    @property
    def display_name(self) -> str:
        return f"{self.declaring_type}.{self.name}"


@dataclass(frozen=True)
class CallSite:
    """
    Located call expression with its resolved target.

    Attributes
    ----------
    id : str
        Stable identifier, unique within a program.
    location : SourceLocation
        Position of the call expression.
    target : MethodRef
        Bound target method (not the surface text of the call).
    enclosing_method : str | None
        Id of the method containing the call, ``None`` for top-level code.
    type_arguments : tuple[TypeSymbol, ...]
        Generic type arguments of the call (explicit or inferred).
    arguments : tuple[Expression, ...]
        Argument expressions in parameter order.
    """

    id: str
    location: SourceLocation
    target: MethodRef
    enclosing_method: str | None = None
    type_arguments: tuple[TypeSymbol, ...] = ()
    arguments: tuple[Expression, ...] = ()

    @property
    def is_generic(self) -> bool:
        return bool(self.type_arguments)


class ProgramIndex(Protocol):
    """Query interface a frontend must provide to the analysis core."""

    def call_sites(self) -> Sequence[CallSite]:
        """Every call expression in the program."""
        ...

    def callers_of(self, method_id: str) -> Sequence[CallSite]:
        """Call sites bound to ``method_id``."""
        ...

    def method(self, method_id: str) -> MethodSymbol | None:
        """Declared method by id."""
        ...

    def local(self, local_id: str) -> LocalVariable | None:
        """Declared local variable by id."""
        ...

    def static_type(self, expression: Expression) -> TypeSymbol | None:
        """Statically inferred type of ``expression``."""
        ...


class ProgramModel:
    """In-memory ``ProgramIndex`` backed by a caller graph."""

    def __init__(
        self,
        *,
        methods: Iterable[MethodSymbol] = (),
        local_variables: Iterable[LocalVariable] = (),
        call_sites: Iterable[CallSite] = (),
        assembly: str = "",
    ) -> None:
        self.assembly = assembly
        self._methods = {method.id: method for method in methods}
        self._locals = {local.id: local for local in local_variables}
        self._call_sites = tuple(call_sites)
        self._order = {site.id: index for index, site in enumerate(self._call_sites)}
        self._graph = nx.MultiDiGraph()
        self._graph.add_nodes_from(self._methods)
        for site in self._call_sites:
            self._graph.add_edge(
                site.enclosing_method or TOP_LEVEL_NODE,
                site.target.method_id,
                key=site.id,
                call_site=site,
            )

    def call_sites(self) -> tuple[CallSite, ...]:
        """
        All call sites in document order.

        Returns
        -------
        tuple[CallSite, ...]
            Every call expression known to the program.
        """
        return self._call_sites

    def callers_of(self, method_id: str) -> tuple[CallSite, ...]:
        """
        Call sites whose bound target is ``method_id``.

        Returns
        -------
        tuple[CallSite, ...]
            Matching call sites in document order (empty when never called).
        """
        if method_id not in self._graph:
            return ()
        sites = [data["call_site"] for _, _, data in self._graph.in_edges(method_id, data=True)]
        return tuple(sorted(sites, key=lambda site: self._order[site.id]))

    def method(self, method_id: str) -> MethodSymbol | None:
        return self._methods.get(method_id)

    def local(self, local_id: str) -> LocalVariable | None:
        return self._locals.get(local_id)

    def static_type(self, expression: Expression) -> TypeSymbol | None:
        return expression.static_type

    @property
    def methods(self) -> tuple[MethodSymbol, ...]:
        return tuple(self._methods.values())

    @property
    def call_graph(self) -> nx.MultiDiGraph:
        """Read-only view of the caller -> callee graph keyed by call-site id."""
        return self._graph.copy(as_view=True)
