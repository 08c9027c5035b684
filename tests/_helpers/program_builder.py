"""Typed builders for assembling in-memory program models in tests."""

from __future__ import annotations

from dataclasses import dataclass, field

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

APP_ASSEMBLY = "App"
ACTIVATOR = MethodRef("M:System.Activator.CreateInstance(System.Type)", "System.Activator", "CreateInstance")
ACTIVATOR_GENERIC = MethodRef("M:System.Activator.CreateInstance``1", "System.Activator", "CreateInstance")


def named(full_name: str, assembly: str = APP_ASSEMBLY, *args: TypeSymbol) -> NamedType:
    return NamedType(full_name=full_name, assembly=assembly, type_arguments=tuple(args))


def type_param(method: MethodSymbol, ordinal: int = 0) -> TypeParameter:
    return TypeParameter(
        name=method.type_parameters[ordinal],
        owner_id=method.id,
        owner_kind="method",
        ordinal=ordinal,
    )


def typeof(symbol: TypeSymbol) -> TypeOfExpression:
    return TypeOfExpression(text=f"typeof({symbol})", target_type=symbol)


def get_type(receiver_type: TypeSymbol | None, text: str = "obj") -> GetTypeExpression:
    receiver = OpaqueExpression(text=text, static_type=receiver_type, shape="object_creation")
    return GetTypeExpression(text=f"{text}.GetType()", receiver=receiver)


def local_ref(local: LocalVariable) -> LocalReference:
    return LocalReference(text=local.name, local_id=local.id)


def param_ref(method: MethodSymbol, ordinal: int = 0) -> ParameterReference:
    return ParameterReference(text=method.parameters[ordinal], method_id=method.id, ordinal=ordinal)


def opaque(text: str, shape: str = "other") -> OpaqueExpression:
    return OpaqueExpression(text=text, shape=shape)


def ref_to(method: MethodSymbol) -> MethodRef:
    return MethodRef(method.id, method.declaring_type, method.name)


@dataclass
class ProgramBuilder:
    """Accumulates declarations and call sites, then freezes them into a ProgramModel."""

    path: str = "Program.cs"
    assembly: str = APP_ASSEMBLY
    methods: list[MethodSymbol] = field(default_factory=list)
    local_variables: list[LocalVariable] = field(default_factory=list)
    call_sites: list[CallSite] = field(default_factory=list)

    def method(
        self,
        name: str,
        *,
        declaring_type: str = "App.Program",
        parameters: tuple[str, ...] = (),
        type_parameters: tuple[str, ...] = (),
    ) -> MethodSymbol:
        suffix = f"``{len(type_parameters)}" if type_parameters else ""
        signature = f"({','.join(parameters)})" if parameters else ""
        symbol = MethodSymbol(
            id=f"M:{declaring_type}.{name}{suffix}{signature}",
            declaring_type=declaring_type,
            name=name,
            parameters=parameters,
            type_parameters=type_parameters,
        )
        self.methods.append(symbol)
        return symbol

    def local(
        self,
        name: str,
        method: MethodSymbol,
        initializer: Expression | None,
        *assignments: Expression,
    ) -> LocalVariable:
        variable = LocalVariable(
            id=f"L:{method.id}:{name}",
            name=name,
            method_id=method.id,
            initializer=initializer,
            assignments=tuple(assignments),
        )
        self.local_variables.append(variable)
        return variable

    def call(
        self,
        target: MethodRef | MethodSymbol,
        *,
        within: MethodSymbol | None = None,
        type_arguments: tuple[TypeSymbol, ...] = (),
        arguments: tuple[Expression, ...] = (),
    ) -> CallSite:
        bound = ref_to(target) if isinstance(target, MethodSymbol) else target
        line = len(self.call_sites) + 1
        site = CallSite(
            id=f"C{line}",
            location=SourceLocation(self.path, line, 8),
            target=bound,
            enclosing_method=within.id if within else None,
            type_arguments=type_arguments,
            arguments=arguments,
        )
        self.call_sites.append(site)
        return site

    def activate(self, *, within: MethodSymbol | None = None, value: Expression | None = None,
                 type_argument: TypeSymbol | None = None) -> CallSite:
        """Add an ``Activator.CreateInstance`` call in value or generic shape."""
        if type_argument is not None:
            return self.call(ACTIVATOR_GENERIC, within=within, type_arguments=(type_argument,))
        if value is None:
            message = "activate() needs a value or a type argument"
            raise ValueError(message)
        return self.call(ACTIVATOR, within=within, arguments=(value,))

    def build(self) -> ProgramModel:
        return ProgramModel(
            methods=self.methods,
            local_variables=self.local_variables,
            call_sites=self.call_sites,
            assembly=self.assembly,
        )
