"""Pydantic models for analysis settings supplied via CLI flags or a settings file."""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from linkerkeep.config.primitives import (
    DEFAULT_MAX_DEPTH,
    AnalysisConfig,
    InstantiationApi,
    ResolutionLimits,
)
from linkerkeep.services.errors import ConfigError

log = logging.getLogger(__name__)

WORKERS_ENV = "LINKERKEEP_WORKERS"
SETTINGS_TABLE = "linkerkeep"


class ApiSettings(BaseModel):
    """Dynamic-instantiation API entry."""

    model_config = ConfigDict(extra="forbid")

    declaring_type: str = Field(..., min_length=1, description="Full name of the declaring type")
    method_name: str = Field(..., min_length=1, description="API method name")
    type_argument_index: int = Field(0, ge=0)
    value_argument_index: int = Field(0, ge=0)

    def to_api(self) -> InstantiationApi:
        return InstantiationApi(
            declaring_type=self.declaring_type,
            method_name=self.method_name,
            type_argument_index=self.type_argument_index,
            value_argument_index=self.value_argument_index,
        )


def _default_apis() -> list[ApiSettings]:
    return [ApiSettings(declaring_type="System.Activator", method_name="CreateInstance")]


class AnalysisSettings(BaseModel):
    """
    Boundary model for analysis settings.

    Typical construction:

        settings = AnalysisSettings.from_file(Path("linkerkeep.toml"))
        cfg = settings.with_overrides(max_depth=16).to_config()
    """

    model_config = ConfigDict(extra="forbid")

    apis: list[ApiSettings] = Field(default_factory=_default_apis, min_length=1)
    max_depth: int = Field(DEFAULT_MAX_DEPTH, ge=1, description="Inter-procedural depth bound")
    workers: int | None = Field(None, ge=1, description="Worker threads; env override when unset")
    collect_failures: bool = Field(
        default=False,
        description="Attempt every call site and report all failures together",
    )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], *, source: str | None = None) -> AnalysisSettings:
        """
        Validate a decoded settings mapping.

        A ``linkerkeep`` table is used when present, otherwise the mapping itself.

        Returns
        -------
        AnalysisSettings
            Validated settings.

        Raises
        ------
        ConfigError
            If validation fails.
        """
        section = payload.get(SETTINGS_TABLE, payload)
        if not isinstance(section, Mapping):
            raise ConfigError.from_message(f"[{SETTINGS_TABLE}] must be a table", source=source)
        try:
            return cls.model_validate(dict(section))
        except PydanticValidationError as exc:
            raise ConfigError.from_message(str(exc), source=source) from exc

    @classmethod
    def from_file(cls, path: Path) -> AnalysisSettings:
        """
        Load settings from a TOML or YAML file.

        Returns
        -------
        AnalysisSettings
            Validated settings.

        Raises
        ------
        ConfigError
            If the file cannot be read, parsed, or validated.
        """
        try:
            text = path.read_text(encoding="utf8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigError.from_message(f"cannot read settings: {exc}", source=str(path)) from exc
        suffix = path.suffix.lower()
        try:
            if suffix == ".toml":
                payload: Any = tomllib.loads(text)
            elif suffix in {".yaml", ".yml"}:
                payload = yaml.safe_load(text) or {}
            else:
                raise ConfigError.from_message(
                    f"unsupported settings format {suffix or '<none>'}", source=str(path)
                )
        except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
            raise ConfigError.from_message(f"cannot parse settings: {exc}", source=str(path)) from exc
        if not isinstance(payload, Mapping):
            raise ConfigError.from_message("settings file must contain a mapping", source=str(path))
        return cls.from_mapping(payload, source=str(path))

    def with_overrides(self, **overrides: Any) -> AnalysisSettings:
        """
        Return a copy with non-``None`` overrides applied and re-validated.

        Returns
        -------
        AnalysisSettings
            Updated settings.

        Raises
        ------
        ConfigError
            If an override is invalid.
        """
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        try:
            return type(self).model_validate(self.model_dump() | updates)
        except PydanticValidationError as exc:
            raise ConfigError.from_message(str(exc)) from exc

    def to_config(self) -> AnalysisConfig:
        """
        Convert to the frozen primitive consumed by the analysis core.

        Returns
        -------
        AnalysisConfig
            Immutable analysis configuration.
        """
        return AnalysisConfig(
            apis=tuple(api.to_api() for api in self.apis),
            limits=ResolutionLimits(max_depth=self.max_depth),
            workers=resolve_worker_count(self.workers),
            collect_failures=self.collect_failures,
        )


def resolve_worker_count(workers: int | None = None) -> int:
    """
    Determine resolver thread count with an environment override.

    Returns
    -------
    int
        ``workers`` when set; otherwise LINKERKEEP_WORKERS when valid; otherwise 1.
    """
    if workers is not None and workers > 0:
        return workers
    env_workers = os.getenv(WORKERS_ENV)
    if env_workers:
        try:
            value = int(env_workers)
            if value > 0:
                return value
        except ValueError:
            pass
        log.warning("Ignoring invalid %s=%s", WORKERS_ENV, env_workers)
    return 1
