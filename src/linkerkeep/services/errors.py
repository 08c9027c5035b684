"""Shared error taxonomy and Problem Details helpers."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Self
from uuid import uuid4

if TYPE_CHECKING:
    from linkerkeep.program.model import CallSite


def generate_correlation_id() -> str:
    """
    Return a new correlation identifier for tracing errors.

    Returns
    -------
    str
        UUID4 correlation identifier.
    """
    return str(uuid4())


@dataclass(frozen=True)
class ProblemDetail:
    """
    RFC 9457 Problem Details payload.

    Fields mirror the standard shape with optional extras for diagnostics.
    """

    type: str
    title: str
    detail: str
    instance: str = field(default_factory=generate_correlation_id)
    code: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize to a JSON-friendly dict.

        Returns
        -------
        dict[str, Any]
            Problem detail payload as a plain dictionary.
        """
        payload: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "detail": self.detail,
            "instance": self.instance,
        }
        if self.code is not None:
            payload["code"] = self.code
        if self.extras:
            payload["extras"] = self.extras
        return payload


def problem(
    code: str,
    title: str,
    detail: str,
    *,
    instance: str | None = None,
    type_uri: str | None = None,
    extras: dict[str, Any] | None = None,
) -> ProblemDetail:
    """
    Create a ProblemDetail with defaults for type/instance.

    Parameters
    ----------
    code
        Stable problem code (e.g., 'resolution.unsupported_pattern').
    title
        Human-readable error summary.
    detail
        Detailed description of the error.
    instance
        Correlation/trace identifier; defaults to a UUID4.
    type_uri
        URI identifying the problem type; defaults to a linkerkeep namespace.
    extras
        Optional structured context for diagnostics.

    Returns
    -------
    ProblemDetail
        Structured problem payload.
    """
    return ProblemDetail(
        type=type_uri or f"https://problems.linkerkeep.dev/{code}",
        title=title,
        detail=detail,
        instance=instance or generate_correlation_id(),
        code=code,
        extras=extras or {},
    )


def log_problem(logger: logging.Logger | logging.LoggerAdapter, detail: ProblemDetail) -> None:
    """Emit a Problem Detail as a structured error log."""
    logger.error(json.dumps(detail.to_dict()))


class ProblemError(Exception):
    """Base exception carrying a ProblemDetail payload."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail.detail)
        self.problem_detail = detail


class FactsValidationError(ProblemError):
    """Program facts document is malformed or internally inconsistent."""

    @classmethod
    def from_message(cls, message: str, *, source: str | None = None) -> Self:
        """
        Build an error for an invalid facts document.

        Returns
        -------
        FactsValidationError
            Error carrying a ``facts.invalid`` problem payload.
        """
        extras = {"source": source} if source else None
        return cls(problem("facts.invalid", "Invalid program facts document", message, extras=extras))


class ConfigError(ProblemError):
    """Analysis settings could not be loaded or validated."""

    @classmethod
    def from_message(cls, message: str, *, source: str | None = None) -> Self:
        """
        Build an error for invalid analysis settings.

        Returns
        -------
        ConfigError
            Error carrying a ``config.invalid`` problem payload.
        """
        extras = {"source": source} if source else None
        return cls(problem("config.invalid", "Invalid analysis settings", message, extras=extras))


class ResolutionError(ProblemError):
    """
    Resolving the type origin of a dynamic-instantiation call site failed.

    Subclasses fix the problem code; every instance records where the offending
    construct was found and its source text.
    """

    code: ClassVar[str] = "resolution.failed"
    title: ClassVar[str] = "Type origin resolution failed"

    def __init__(self, detail: ProblemDetail, *, location: str, construct: str) -> None:
        super().__init__(detail)
        self.location = location
        self.construct = construct

    @classmethod
    def at(
        cls,
        site: CallSite,
        construct: str,
        reason: str,
        *,
        origin: CallSite | None = None,
    ) -> Self:
        """
        Build an error located at ``site``.

        Parameters
        ----------
        site
            Call site where the offending construct was encountered.
        construct
            Source text (or kind) of the construct that could not be resolved.
        reason
            Human-readable explanation.
        origin
            Top-level dynamic-instantiation call site being resolved, when it
            differs from ``site``.

        Returns
        -------
        ResolutionError
            Error of the concrete subclass with location metadata attached.
        """
        location = str(site.location)
        extras: dict[str, Any] = {
            "call_site": site.id,
            "location": location,
            "construct": construct,
        }
        if origin is not None and origin.id != site.id:
            extras["origin_call_site"] = origin.id
            extras["origin_location"] = str(origin.location)
        detail = problem(cls.code, cls.title, f"{location}: {reason}: {construct}", extras=extras)
        return cls(detail, location=location, construct=construct)


class UnsupportedPatternError(ResolutionError):
    """Expression shape is not recognised by the resolver."""

    code = "resolution.unsupported_pattern"
    title = "Unsupported dynamic-instantiation pattern"


class MissingTypeInfoError(ResolutionError):
    """Static type information required for resolution is unavailable."""

    code = "resolution.missing_type_info"
    title = "Missing static type information"


class RecursionLimitExceededError(ResolutionError):
    """Inter-procedural propagation exceeded the configured depth bound."""

    code = "resolution.recursion_limit"
    title = "Resolution depth limit exceeded"


class AnalysisFailedError(ProblemError):
    """One or more call sites failed to resolve; no keep-list is produced."""

    def __init__(self, failures: Sequence[ResolutionError]) -> None:
        self.failures = tuple(failures)
        detail = problem(
            "analysis.failed",
            "Keep-list analysis failed",
            f"{len(self.failures)} call site(s) could not be resolved",
            extras={"failures": [err.problem_detail.to_dict() for err in self.failures]},
        )
        super().__init__(detail)
