"""Load program facts documents exported by a compiler frontend.

A facts document is the serialized output of the frontend that parsed and bound
the target program. Pydantic models validate the document shape at the boundary;
``parse_program`` then checks referential integrity and converts everything into
the frozen dataclasses of ``linkerkeep.program.model``.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from linkerkeep.program.model import (
    CallSite,
    Expression,
    GetTypeExpression,
    LocalReference,
    LocalVariable,
    MethodRef,
    MethodSymbol,
    NamedType,
    OpaqueExpression,
    ParameterReference,
    ProgramModel,
    SourceLocation,
    TypeOfExpression,
    TypeParameter,
    TypeSymbol,
)
from linkerkeep.services.errors import FactsValidationError

log = logging.getLogger(__name__)

YAML_SUFFIXES = frozenset({".yaml", ".yml"})


class _FactsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class LocationDoc(_FactsModel):
    """Source position."""

    path: str
    line: int = Field(..., ge=0)
    column: int = Field(0, ge=0)

    def to_location(self) -> SourceLocation:
        return SourceLocation(path=self.path, line=self.line, column=self.column)


class NamedTypeDoc(_FactsModel):
    """Named (possibly constructed generic) type."""

    kind: Literal["named"]
    full_name: str
    assembly: str
    type_arguments: list[TypeDoc] = Field(default_factory=list)


class TypeParameterDoc(_FactsModel):
    """Open generic type parameter."""

    kind: Literal["type_parameter"]
    name: str
    owner_id: str
    owner_kind: Literal["method", "type"] = "method"
    ordinal: int = Field(..., ge=0)


TypeDoc = Annotated[NamedTypeDoc | TypeParameterDoc, Field(discriminator="kind")]


class _ExpressionDoc(_FactsModel):
    text: str = ""
    static_type: TypeDoc | None = None


class TypeOfDoc(_ExpressionDoc):
    """``typeof(T)``."""

    kind: Literal["typeof"]
    operand: TypeDoc = Field(..., alias="type")


class GetTypeDoc(_ExpressionDoc):
    """``receiver.GetType()``."""

    kind: Literal["get_type"]
    receiver: ExpressionDoc


class LocalRefDoc(_ExpressionDoc):
    """Local variable read."""

    kind: Literal["local"]
    local_id: str


class ParameterRefDoc(_ExpressionDoc):
    """Parameter read."""

    kind: Literal["parameter"]
    method_id: str
    ordinal: int = Field(..., ge=0)


class OpaqueDoc(_ExpressionDoc):
    """Expression shapes carried through without interpretation."""

    kind: Literal[
        "object_creation",
        "invocation",
        "element_access",
        "member_access",
        "literal",
        "other",
    ]


ExpressionDoc = Annotated[
    TypeOfDoc | GetTypeDoc | LocalRefDoc | ParameterRefDoc | OpaqueDoc,
    Field(discriminator="kind"),
]


class NamedDeclDoc(_FactsModel):
    """Parameter or type-parameter declaration."""

    name: str


class MethodDoc(_FactsModel):
    """Declared method."""

    id: str
    declaring_type: str
    name: str
    parameters: list[NamedDeclDoc] = Field(default_factory=list)
    type_parameters: list[NamedDeclDoc] = Field(default_factory=list)
    location: LocationDoc | None = None


class LocalDoc(_FactsModel):
    """Declared local variable."""

    id: str
    name: str
    method_id: str
    initializer: ExpressionDoc | None = None
    assignments: list[ExpressionDoc] = Field(default_factory=list)


class TargetDoc(_FactsModel):
    """Bound call target."""

    method_id: str
    declaring_type: str
    name: str


class CallSiteDoc(_FactsModel):
    """Call expression."""

    id: str
    location: LocationDoc
    enclosing_method: str | None = None
    target: TargetDoc
    type_arguments: list[TypeDoc] = Field(default_factory=list)
    arguments: list[ExpressionDoc] = Field(default_factory=list)


class ProgramFactsDoc(_FactsModel):
    """Top-level facts document."""

    schema_version: Literal[1]
    assembly: str = ""
    methods: list[MethodDoc] = Field(default_factory=list)
    local_variables: list[LocalDoc] = Field(default_factory=list, alias="locals")
    call_sites: list[CallSiteDoc] = Field(default_factory=list)


for _model in (NamedTypeDoc, TypeParameterDoc, TypeOfDoc, GetTypeDoc, LocalRefDoc, ParameterRefDoc,
               OpaqueDoc, LocalDoc, CallSiteDoc, ProgramFactsDoc):
    _model.model_rebuild()


def load_program(path: Path) -> ProgramModel:
    """
    Read and convert a facts document from disk.

    JSON is assumed unless the suffix is ``.yaml`` or ``.yml``.

    Parameters
    ----------
    path
        Location of the facts document.

    Returns
    -------
    ProgramModel
        Validated program model.

    Raises
    ------
    FactsValidationError
        If the file cannot be read or decoded, or the document is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FactsValidationError.from_message(f"cannot read facts document: {exc}", source=str(path)) from exc
    try:
        payload = yaml.safe_load(text) if path.suffix.lower() in YAML_SUFFIXES else json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise FactsValidationError.from_message(f"cannot decode facts document: {exc}", source=str(path)) from exc
    if not isinstance(payload, Mapping):
        raise FactsValidationError.from_message("facts document must be a mapping", source=str(path))
    program = parse_program(payload, source=str(path))
    log.info(
        "facts.loaded path=%s methods=%d call_sites=%d",
        path,
        len(program.methods),
        len(program.call_sites()),
    )
    return program


def parse_program(payload: Mapping[str, Any], *, source: str | None = None) -> ProgramModel:
    """
    Validate a decoded facts payload and build the program model.

    Returns
    -------
    ProgramModel
        Program model over the document's methods, locals and call sites.

    Raises
    ------
    FactsValidationError
        On schema violations or dangling references.
    """
    try:
        doc = ProgramFactsDoc.model_validate(payload)
    except PydanticValidationError as exc:
        raise FactsValidationError.from_message(str(exc), source=source) from exc
    _check_integrity(doc, source)
    return ProgramModel(
        methods=[_to_method(method) for method in doc.methods],
        local_variables=[_to_local(local) for local in doc.local_variables],
        call_sites=[_to_call_site(site) for site in doc.call_sites],
        assembly=doc.assembly,
    )


# ---------------------------------------------------------------------------
# Integrity checks
# ---------------------------------------------------------------------------


def _check_integrity(doc: ProgramFactsDoc, source: str | None) -> None:
    def fail(message: str) -> None:
        raise FactsValidationError.from_message(message, source=source)

    for label, ids in (
        ("method", [method.id for method in doc.methods]),
        ("local", [local.id for local in doc.local_variables]),
        ("call site", [site.id for site in doc.call_sites]),
    ):
        duplicates = sorted(name for name, count in Counter(ids).items() if count > 1)
        if duplicates:
            fail(f"duplicate {label} id(s): {', '.join(duplicates)}")

    methods = {method.id: method for method in doc.methods}
    local_ids = {local.id for local in doc.local_variables}

    for local in doc.local_variables:
        if local.method_id not in methods:
            fail(f"local {local.id} references unknown method {local.method_id}")
    for site in doc.call_sites:
        if site.enclosing_method is not None and site.enclosing_method not in methods:
            fail(f"call site {site.id} has unknown enclosing method {site.enclosing_method}")

    for owner, expression in _all_expressions(doc):
        if isinstance(expression, LocalRefDoc) and expression.local_id not in local_ids:
            fail(f"{owner} references unknown local {expression.local_id}")
        if isinstance(expression, ParameterRefDoc):
            method = methods.get(expression.method_id)
            if method is None:
                fail(f"{owner} references parameter of unknown method {expression.method_id}")
            elif expression.ordinal >= len(method.parameters):
                fail(
                    f"{owner} references parameter {expression.ordinal} of {expression.method_id}, "
                    f"which declares {len(method.parameters)}"
                )

    for owner, symbol in _all_type_symbols(doc):
        if not isinstance(symbol, TypeParameterDoc) or symbol.owner_kind != "method":
            continue
        method = methods.get(symbol.owner_id)
        if method is None:
            fail(f"{owner} uses type parameter {symbol.name} of unknown method {symbol.owner_id}")
        elif symbol.ordinal >= len(method.type_parameters):
            fail(f"{owner} uses type parameter ordinal {symbol.ordinal} beyond {symbol.owner_id}")


def _all_expressions(doc: ProgramFactsDoc) -> Iterator[tuple[str, Any]]:
    roots: list[tuple[str, Any]] = []
    for local in doc.local_variables:
        if local.initializer is not None:
            roots.append((f"local {local.id}", local.initializer))
        roots.extend((f"local {local.id}", expr) for expr in local.assignments)
    for site in doc.call_sites:
        roots.extend((f"call site {site.id}", expr) for expr in site.arguments)
    for owner, root in roots:
        stack = [root]
        while stack:
            expression = stack.pop()
            yield owner, expression
            if isinstance(expression, GetTypeDoc):
                stack.append(expression.receiver)


def _all_type_symbols(doc: ProgramFactsDoc) -> Iterator[tuple[str, NamedTypeDoc | TypeParameterDoc]]:
    roots: list[tuple[str, Any]] = []
    for site in doc.call_sites:
        roots.extend((f"call site {site.id}", symbol) for symbol in site.type_arguments)
    for owner, expression in _all_expressions(doc):
        if isinstance(expression, TypeOfDoc):
            roots.append((owner, expression.operand))
        if expression.static_type is not None:
            roots.append((owner, expression.static_type))
    for owner, root in roots:
        stack = [root]
        while stack:
            symbol = stack.pop()
            yield owner, symbol
            if isinstance(symbol, NamedTypeDoc):
                stack.extend(symbol.type_arguments)


# ---------------------------------------------------------------------------
# Conversion to the program model
# ---------------------------------------------------------------------------


def _to_type(doc: NamedTypeDoc | TypeParameterDoc) -> TypeSymbol:
    if isinstance(doc, NamedTypeDoc):
        return NamedType(
            full_name=doc.full_name,
            assembly=doc.assembly,
            type_arguments=tuple(_to_type(arg) for arg in doc.type_arguments),
        )
    return TypeParameter(name=doc.name, owner_id=doc.owner_id, owner_kind=doc.owner_kind, ordinal=doc.ordinal)


def _to_expression(doc: Any) -> Expression:
    static_type = _to_type(doc.static_type) if doc.static_type is not None else None
    if isinstance(doc, TypeOfDoc):
        return TypeOfExpression(text=doc.text, static_type=static_type, target_type=_to_type(doc.operand))
    if isinstance(doc, GetTypeDoc):
        return GetTypeExpression(text=doc.text, static_type=static_type, receiver=_to_expression(doc.receiver))
    if isinstance(doc, LocalRefDoc):
        return LocalReference(text=doc.text, static_type=static_type, local_id=doc.local_id)
    if isinstance(doc, ParameterRefDoc):
        return ParameterReference(
            text=doc.text, static_type=static_type, method_id=doc.method_id, ordinal=doc.ordinal
        )
    return OpaqueExpression(text=doc.text, static_type=static_type, shape=doc.kind)


def _to_method(doc: MethodDoc) -> MethodSymbol:
    return MethodSymbol(
        id=doc.id,
        declaring_type=doc.declaring_type,
        name=doc.name,
        parameters=tuple(param.name for param in doc.parameters),
        type_parameters=tuple(param.name for param in doc.type_parameters),
        location=doc.location.to_location() if doc.location else None,
    )


def _to_local(doc: LocalDoc) -> LocalVariable:
    return LocalVariable(
        id=doc.id,
        name=doc.name,
        method_id=doc.method_id,
        initializer=_to_expression(doc.initializer) if doc.initializer is not None else None,
        assignments=tuple(_to_expression(expr) for expr in doc.assignments),
    )


def _to_call_site(doc: CallSiteDoc) -> CallSite:
    return CallSite(
        id=doc.id,
        location=doc.location.to_location(),
        target=MethodRef(
            method_id=doc.target.method_id,
            declaring_type=doc.target.declaring_type,
            name=doc.target.name,
        ),
        enclosing_method=doc.enclosing_method,
        type_arguments=tuple(_to_type(arg) for arg in doc.type_arguments),
        arguments=tuple(_to_expression(arg) for arg in doc.arguments),
    )
