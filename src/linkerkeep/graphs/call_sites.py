"""Find call sites by bound target identity."""

from __future__ import annotations

import logging

from linkerkeep.program.model import CallSite, MethodSymbol, ProgramIndex

log = logging.getLogger(__name__)


class CallSiteScanner:
    """
    Locate call expressions whose resolved target matches a method identity.

    Matching uses the bound target recorded by the frontend, never the surface
    text of the call, so unrelated methods sharing a textual name and calls
    that bind to a different overload are excluded.
    """

    def __init__(self, program: ProgramIndex) -> None:
        self._program = program

    def find_call_sites(
        self,
        declaring_type: str,
        method_name: str,
        *,
        method_id: str | None = None,
    ) -> list[CallSite]:
        """
        Scan every call expression for targets bound to ``declaring_type.method_name``.

        Parameters
        ----------
        declaring_type
            Full name of the type declaring the target method.
        method_name
            Target method name.
        method_id
            Restrict matches to one overload.

        Returns
        -------
        list[CallSite]
            Matching call sites in program order.
        """
        matches = [
            site
            for site in self._program.call_sites()
            if site.target.declaring_type == declaring_type
            and site.target.name == method_name
            and (method_id is None or site.target.method_id == method_id)
        ]
        log.debug(
            "scan.call_sites target=%s.%s method_id=%s matches=%d",
            declaring_type,
            method_name,
            method_id,
            len(matches),
        )
        return matches

    def callers_of(self, method: MethodSymbol) -> list[CallSite]:
        """
        Call sites bound to exactly ``method``.

        Returns
        -------
        list[CallSite]
            Callers in program order (empty when the method is never called).
        """
        return [
            site
            for site in self._program.callers_of(method.id)
            if site.target.declaring_type == method.declaring_type and site.target.name == method.name
        ]
