"""Backward resolution of the concrete types a dynamic-instantiation call can build.

Two call shapes are traced:

Generic-argument shape (``CreateInstance<T>()``)
    A closed type argument is terminal. A type parameter of the enclosing method
    is propagated to every caller of that method, taking the type argument bound
    at the same ordinal.

Value-argument shape (``CreateInstance(typeValue)``)
    ``typeof(X)`` and ``expr.GetType()`` are terminal (the latter uses the static
    type of ``expr`` and so ignores subclasses created at runtime). A local with
    a single initializer is traced through its initializer. A parameter of the
    enclosing method is traced into the matching argument at every caller; a
    generic caller of such a method cannot be traced and fails the resolution.

Propagation runs on an explicit work queue ordered by inter-procedural depth.
Each work item carries its own ``ResolutionContext`` so that a path never
revisits a call-site position. Every call-site position and local is expanded
at most once per ``resolve`` call, at the shallowest depth it is reachable, so
work stays linear in the size of the caller graph and the depth limit bounds
the shortest path to each position.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, replace

from linkerkeep.config.primitives import InstantiationApi, ResolutionLimits
from linkerkeep.graphs.call_sites import CallSiteScanner
from linkerkeep.keeplist.aggregate import TypeReference
from linkerkeep.program.model import (
    CallSite,
    Expression,
    GetTypeExpression,
    LocalReference,
    NamedType,
    ParameterReference,
    ProgramIndex,
    TypeOfExpression,
    TypeParameter,
    TypeSymbol,
)
from linkerkeep.services.errors import (
    MissingTypeInfoError,
    RecursionLimitExceededError,
    UnsupportedPatternError,
)

log = logging.getLogger(__name__)

PathKey = tuple[str, str, int]


@dataclass(frozen=True)
class ResolutionContext:
    """
    State of one propagation path.

    Attributes
    ----------
    origin : CallSite
        Top-level dynamic-instantiation call being resolved.
    visited : frozenset[PathKey]
        Call-site argument positions and locals already on this path.
    depth : int
        Inter-procedural steps taken along this path.
    """

    origin: CallSite
    visited: frozenset[PathKey] = frozenset()
    depth: int = 0

    def __contains__(self, key: object) -> bool:
        return key in self.visited

    def enter(self, key: PathKey) -> ResolutionContext:
        return replace(self, visited=self.visited | {key})

    def descend(self, key: PathKey) -> ResolutionContext:
        return replace(self, visited=self.visited | {key}, depth=self.depth + 1)


@dataclass(frozen=True)
class _TypeArgumentWork:
    key: PathKey
    site: CallSite
    position: int
    context: ResolutionContext


@dataclass(frozen=True)
class _ValueWork:
    key: PathKey
    site: CallSite
    expression: Expression
    context: ResolutionContext


_Work = _TypeArgumentWork | _ValueWork


class TypeOriginResolver:
    """Derive the concrete types a dynamic-instantiation call site can produce."""

    def __init__(
        self,
        program: ProgramIndex,
        scanner: CallSiteScanner | None = None,
        *,
        limits: ResolutionLimits | None = None,
    ) -> None:
        self._program = program
        self._scanner = scanner or CallSiteScanner(program)
        self._limits = limits or ResolutionLimits()

    def resolve(self, site: CallSite, api: InstantiationApi | None = None) -> tuple[TypeReference, ...]:
        """
        Resolve every concrete type ``site`` can instantiate.

        Parameters
        ----------
        site
            Call to a dynamic-instantiation API.
        api
            API descriptor supplying the type-argument and value-argument
            positions; position 0 for both when omitted.

        Returns
        -------
        tuple[TypeReference, ...]
            Distinct types in discovery order (empty when the type value only
            flows from methods that are never called).

        Raises
        ------
        UnsupportedPatternError
            An expression or call shape on the path is not recognised.
        MissingTypeInfoError
            A required static type or declaration is unavailable.
        RecursionLimitExceededError
            A call-site position is only reachable through more
            inter-procedural steps than allowed.
        """
        queue: deque[_Work] = deque([self._seed(site, api)])
        expanded: set[PathKey] = set()
        found: dict[TypeReference, None] = {}
        deepest = 0
        while queue:
            # Depths leave the queue in nondecreasing order, so the first
            # expansion of a key is also its shallowest.
            work = queue.popleft()
            if work.key in expanded:
                continue
            expanded.add(work.key)
            if work.context.depth > self._limits.max_depth:
                raise RecursionLimitExceededError.at(
                    work.site,
                    work.site.target.display_name,
                    f"propagation exceeded {self._limits.max_depth} inter-procedural steps",
                    origin=work.context.origin,
                )
            deepest = max(deepest, work.context.depth)
            if isinstance(work, _TypeArgumentWork):
                successors = self._step_type_argument(work, found)
            else:
                successors = self._step_value(work, found)
            same_depth = [s for s in successors if s.context.depth == work.context.depth]
            queue.extendleft(reversed(same_depth))
            queue.extend(s for s in successors if s.context.depth > work.context.depth)
        log.debug(
            "resolve.call_site id=%s location=%s types=%d depth=%d expanded=%d",
            site.id,
            site.location,
            len(found),
            deepest,
            len(expanded),
        )
        return tuple(found)

    # ------------------------------------------------------------------
    # Work steps
    # ------------------------------------------------------------------

    def _seed(self, site: CallSite, api: InstantiationApi | None) -> _Work:
        context = ResolutionContext(origin=site)
        if site.type_arguments:
            index = api.type_argument_index if api is not None else 0
            if index >= len(site.type_arguments):
                raise UnsupportedPatternError.at(
                    site, site.target.display_name, f"call has no type argument at position {index}"
                )
            key: PathKey = ("type_argument", site.id, index)
            return _TypeArgumentWork(key, site, index, context.enter(key))
        if site.arguments:
            index = api.value_argument_index if api is not None else 0
            if index >= len(site.arguments):
                raise UnsupportedPatternError.at(
                    site, site.target.display_name, f"call has no argument at position {index}"
                )
            key = ("argument", site.id, index)
            return _ValueWork(key, site, site.arguments[index], context.enter(key))
        raise UnsupportedPatternError.at(
            site,
            site.target.display_name,
            "call has neither a type argument nor a type value argument",
        )

    def _step_type_argument(self, work: _TypeArgumentWork, found: dict[TypeReference, None]) -> list[_Work]:
        symbol = work.site.type_arguments[work.position]
        return self._from_type_symbol(work.site, symbol, str(symbol), work.context, found)

    def _step_value(self, work: _ValueWork, found: dict[TypeReference, None]) -> list[_Work]:
        site, expression, context = work.site, work.expression, work.context
        if isinstance(expression, TypeOfExpression):
            return self._from_type_symbol(site, expression.target_type, expression.describe(), context, found)
        if isinstance(expression, GetTypeExpression):
            receiver_type = self._program.static_type(expression.receiver)
            if receiver_type is None:
                raise MissingTypeInfoError.at(
                    site,
                    expression.describe(),
                    "static type of the receiver is unknown",
                    origin=context.origin,
                )
            return self._from_type_symbol(site, receiver_type, expression.describe(), context, found)
        if isinstance(expression, LocalReference):
            return self._from_local(site, expression, context)
        if isinstance(expression, ParameterReference):
            return self._from_parameter(site, expression, context)
        raise UnsupportedPatternError.at(
            site,
            expression.describe(),
            f"cannot trace a type through a {expression.kind} expression",
            origin=context.origin,
        )

    # ------------------------------------------------------------------
    # Terminals and propagation
    # ------------------------------------------------------------------

    def _from_type_symbol(
        self,
        site: CallSite,
        symbol: TypeSymbol,
        construct: str,
        context: ResolutionContext,
        found: dict[TypeReference, None],
    ) -> list[_Work]:
        if isinstance(symbol, TypeParameter):
            return self._from_type_parameter(site, symbol, context)
        if not symbol.is_closed:
            raise UnsupportedPatternError.at(
                site, construct, f"type {symbol} is not closed", origin=context.origin
            )
        if not symbol.assembly:
            raise MissingTypeInfoError.at(
                site, construct, f"declaring assembly of {symbol} is unknown", origin=context.origin
            )
        found.setdefault(_reference(symbol), None)
        return []

    def _from_type_parameter(
        self,
        site: CallSite,
        parameter: TypeParameter,
        context: ResolutionContext,
    ) -> list[_Work]:
        if parameter.owner_kind != "method":
            raise UnsupportedPatternError.at(
                site,
                parameter.name,
                "type parameter of an enclosing type cannot be traced to a call site",
                origin=context.origin,
            )
        method = self._program.method(parameter.owner_id)
        if method is None:
            raise MissingTypeInfoError.at(
                site,
                parameter.name,
                f"declaring method {parameter.owner_id} is unknown",
                origin=context.origin,
            )
        callers = self._scanner.callers_of(method)
        if not callers:
            log.warning(
                "resolve.no_callers method=%s type_parameter=%s origin=%s",
                method.display_name,
                parameter.name,
                context.origin.location,
            )
        successors: list[_Work] = []
        for caller in callers:
            if parameter.ordinal >= len(caller.type_arguments):
                raise UnsupportedPatternError.at(
                    caller,
                    method.display_name,
                    f"call does not bind type parameter {parameter.name}",
                    origin=context.origin,
                )
            key: PathKey = ("type_argument", caller.id, parameter.ordinal)
            if key in context:
                log.debug("resolve.cycle call_site=%s type_parameter=%s", caller.id, parameter.name)
                continue
            successors.append(_TypeArgumentWork(key, caller, parameter.ordinal, context.descend(key)))
        return successors

    def _from_local(
        self,
        site: CallSite,
        reference: LocalReference,
        context: ResolutionContext,
    ) -> list[_Work]:
        local = self._program.local(reference.local_id)
        if local is None:
            raise MissingTypeInfoError.at(
                site,
                reference.describe(),
                f"local {reference.local_id} is not declared",
                origin=context.origin,
            )
        if local.initializer is None:
            raise UnsupportedPatternError.at(
                site, local.name, "local variable has no initializer", origin=context.origin
            )
        if local.assignments:
            raise UnsupportedPatternError.at(
                site,
                local.name,
                f"local variable is assigned {len(local.assignments) + 1} times",
                origin=context.origin,
            )
        key: PathKey = ("local", local.id, 0)
        if key in context:
            log.debug("resolve.cycle local=%s", local.id)
            return []
        return [_ValueWork(key, site, local.initializer, context.enter(key))]

    def _from_parameter(
        self,
        site: CallSite,
        reference: ParameterReference,
        context: ResolutionContext,
    ) -> list[_Work]:
        method = self._program.method(reference.method_id)
        if method is None:
            raise MissingTypeInfoError.at(
                site,
                reference.describe(),
                f"declaring method {reference.method_id} is unknown",
                origin=context.origin,
            )
        name = (
            method.parameters[reference.ordinal]
            if reference.ordinal < len(method.parameters)
            else f"#{reference.ordinal}"
        )
        callers = self._scanner.callers_of(method)
        for caller in callers:
            if caller.is_generic:
                raise UnsupportedPatternError.at(
                    caller,
                    method.display_name,
                    f"generic call passes parameter {name}; only non-generic callers can be traced",
                    origin=context.origin,
                )
        if not callers:
            log.warning(
                "resolve.no_callers method=%s parameter=%s origin=%s",
                method.display_name,
                name,
                context.origin.location,
            )
        successors: list[_Work] = []
        for caller in callers:
            if reference.ordinal >= len(caller.arguments):
                raise UnsupportedPatternError.at(
                    caller,
                    method.display_name,
                    f"no argument supplied for parameter {name}",
                    origin=context.origin,
                )
            key: PathKey = ("argument", caller.id, reference.ordinal)
            if key in context:
                log.debug("resolve.cycle call_site=%s parameter=%s", caller.id, name)
                continue
            successors.append(
                _ValueWork(key, caller, caller.arguments[reference.ordinal], context.descend(key))
            )
        return successors


def _reference(symbol: NamedType) -> TypeReference:
    return TypeReference(assembly=symbol.assembly, type_name=symbol.full_name)
