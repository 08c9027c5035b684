"""Drive call-site discovery, type-origin resolution, aggregation and emission."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from linkerkeep.config.primitives import AnalysisConfig, InstantiationApi
from linkerkeep.graphs.call_sites import CallSiteScanner
from linkerkeep.graphs.type_origin import TypeOriginResolver
from linkerkeep.keeplist.aggregate import KeepList, TypeReference, aggregate
from linkerkeep.keeplist.emit import emit
from linkerkeep.program.model import CallSite, ProgramIndex
from linkerkeep.services.errors import AnalysisFailedError, ResolutionError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryCallSite:
    """Top-level dynamic-instantiation call and the API it binds to."""

    call_site: CallSite
    api: InstantiationApi


@dataclass(frozen=True)
class AnalysisResult:
    """
    Outcome of a successful analysis run.

    Attributes
    ----------
    keep_list : KeepList
        Types to preserve, grouped by assembly.
    entries : tuple[EntryCallSite, ...]
        Top-level call sites that were resolved.
    resolved : dict[str, tuple[TypeReference, ...]]
        Types resolved per entry call-site id.
    """

    keep_list: KeepList
    entries: tuple[EntryCallSite, ...] = ()
    resolved: dict[str, tuple[TypeReference, ...]] = field(default_factory=dict)

    def render(self) -> str:
        """
        Linker descriptor text for the keep-list.

        Returns
        -------
        str
            Emitted XML document.
        """
        return emit(self.keep_list)


def discover_entries(program: ProgramIndex, config: AnalysisConfig) -> list[EntryCallSite]:
    """
    Find every call site of the configured dynamic-instantiation APIs.

    Returns
    -------
    list[EntryCallSite]
        Entry call sites in API order, then program order; a call site bound to
        several configured APIs is listed once, under the first.
    """
    scanner = CallSiteScanner(program)
    seen: set[str] = set()
    entries: list[EntryCallSite] = []
    for api in config.apis:
        for site in scanner.find_call_sites(api.declaring_type, api.method_name):
            if site.id in seen:
                continue
            seen.add(site.id)
            entries.append(EntryCallSite(call_site=site, api=api))
    log.info("analysis.entries apis=%s call_sites=%d", ",".join(map(str, config.apis)), len(entries))
    return entries


def analyze(program: ProgramIndex, config: AnalysisConfig | None = None) -> AnalysisResult:
    """
    Resolve every dynamic-instantiation call site and aggregate the results.

    Parameters
    ----------
    program
        Frontend-supplied program index.
    config
        Analysis settings; defaults to ``Activator.CreateInstance`` with
        sequential, fail-fast resolution.

    Returns
    -------
    AnalysisResult
        Keep-list plus per-call-site resolutions.

    Raises
    ------
    ResolutionError
        First failure, in fail-fast mode.
    AnalysisFailedError
        All failures, when ``collect_failures`` is enabled.
    """
    cfg = config or AnalysisConfig()
    entries = discover_entries(program, cfg)
    resolver = TypeOriginResolver(program, CallSiteScanner(program), limits=cfg.limits)

    if cfg.workers > 1 and len(entries) > 1:
        outcomes = _resolve_parallel(resolver, entries, cfg)
    else:
        outcomes = [_resolve_one(resolver, entry, cfg.collect_failures) for entry in entries]

    failures = [outcome for outcome in outcomes if isinstance(outcome, ResolutionError)]
    if failures:
        raise AnalysisFailedError(failures)

    resolved: dict[str, tuple[TypeReference, ...]] = {}
    keep_list = KeepList()
    for entry, outcome in zip(entries, outcomes, strict=True):
        if isinstance(outcome, ResolutionError):
            continue
        resolved[entry.call_site.id] = outcome
        keep_list.merge(aggregate(outcome))

    log.info(
        "analysis.complete call_sites=%d assemblies=%d types=%d",
        len(entries),
        len(keep_list.assemblies()),
        len(keep_list),
    )
    return AnalysisResult(keep_list=keep_list, entries=tuple(entries), resolved=resolved)


def _resolve_one(
    resolver: TypeOriginResolver,
    entry: EntryCallSite,
    collect_failures: bool,
) -> tuple[TypeReference, ...] | ResolutionError:
    try:
        return resolver.resolve(entry.call_site, entry.api)
    except ResolutionError as exc:
        if not collect_failures:
            raise
        log.warning("analysis.failure call_site=%s detail=%s", entry.call_site.id, exc)
        return exc


def _resolve_parallel(
    resolver: TypeOriginResolver,
    entries: Sequence[EntryCallSite],
    cfg: AnalysisConfig,
) -> list[tuple[TypeReference, ...] | ResolutionError]:
    """Resolve entries on a thread pool; results are returned in entry order."""
    log.debug("analysis.parallel workers=%d call_sites=%d", cfg.workers, len(entries))
    with ThreadPoolExecutor(max_workers=cfg.workers, thread_name_prefix="linkerkeep") as pool:
        futures: list[Future[tuple[TypeReference, ...] | ResolutionError]] = [
            pool.submit(_resolve_one, resolver, entry, cfg.collect_failures) for entry in entries
        ]
        try:
            return [future.result() for future in futures]
        except ResolutionError:
            for future in futures:
                future.cancel()
            raise


def write_keep_list(result: AnalysisResult, path: Path) -> Path:
    """
    Write the emitted descriptor to ``path``, creating parent directories.

    Only a successful ``AnalysisResult`` can reach this point, so a failed run
    never touches the destination.

    Returns
    -------
    Path
        Destination path.
    """
    text = result.render()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline="\n")
    log.info("analysis.written path=%s bytes=%d", path, len(text.encode("utf-8")))
    return path
