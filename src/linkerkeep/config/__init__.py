"""Configuration for linkerkeep analysis runs.

- **Primitives** (`primitives.py`): frozen dataclasses consumed by the analysis core.
- **Models** (`models.py`): Pydantic models for CLI flags and settings files.

    from linkerkeep.config import AnalysisSettings

    cfg = AnalysisSettings.from_file(Path("linkerkeep.toml")).to_config()
"""

from linkerkeep.config.models import AnalysisSettings, ApiSettings, resolve_worker_count
from linkerkeep.config.primitives import (
    ACTIVATOR_CREATE_INSTANCE,
    DEFAULT_MAX_DEPTH,
    AnalysisConfig,
    InstantiationApi,
    ResolutionLimits,
)

__all__ = [
    "ACTIVATOR_CREATE_INSTANCE",
    "DEFAULT_MAX_DEPTH",
    "AnalysisConfig",
    "AnalysisSettings",
    "ApiSettings",
    "InstantiationApi",
    "ResolutionLimits",
    "resolve_worker_count",
]
