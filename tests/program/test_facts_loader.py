"""Tests for loading and validating program facts documents."""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest
import yaml

from linkerkeep.program.facts import load_program, parse_program
from linkerkeep.program.model import (
    GetTypeExpression,
    LocalReference,
    NamedType,
    ParameterReference,
    ProgramModel,
    TypeParameter,
)
from linkerkeep.services.errors import FactsValidationError

METHOD_COUNT = 4
CALL_SITE_COUNT = 14


def _payload(activator_facts_path: Path) -> dict:
    return json.loads(activator_facts_path.read_text(encoding="utf-8"))


def test_load_converts_document(activator_program: ProgramModel) -> None:
    """The fixture converts into typed model objects."""
    if len(activator_program.methods) != METHOD_COUNT:
        pytest.fail(f"Expected {METHOD_COUNT} methods, got {len(activator_program.methods)}")
    sites = {site.id: site for site in activator_program.call_sites()}
    if len(sites) != CALL_SITE_COUNT:
        pytest.fail(f"Expected {CALL_SITE_COUNT} call sites, got {len(sites)}")
    if activator_program.assembly != "Test":
        pytest.fail(f"Unexpected assembly {activator_program.assembly}")

    if not isinstance(sites["c07"].arguments[0], LocalReference):
        pytest.fail("c07 should pass a local reference")
    if not isinstance(sites["c12"].arguments[0], ParameterReference):
        pytest.fail("c12 should pass a parameter reference")
    get_type = sites["c10"].arguments[0]
    if not isinstance(get_type, GetTypeExpression):
        pytest.fail("c10 should pass a GetType expression")
    receiver_type = activator_program.static_type(get_type.receiver)
    if receiver_type != NamedType("ActivatorTest.Program+GetTypeClass", "Test"):
        pytest.fail(f"Unexpected receiver type {receiver_type}")
    if not isinstance(sites["c14"].type_arguments[0], TypeParameter):
        pytest.fail("c14 should forward an open type parameter")


def test_callers_of_uses_bound_method(activator_program: ProgramModel) -> None:
    """Callers of the non-generic overload exclude the generic one."""
    callers = activator_program.callers_of("M:ActivatorTest.Program.TryConstruct(System.Type)")

    if [site.id for site in callers] != ["c03", "c05"]:
        pytest.fail(f"Unexpected callers {[site.id for site in callers]}")
    if activator_program.callers_of("M:Nobody.Calls.This") != ():
        pytest.fail("Unknown methods should have no callers")


def test_yaml_document_is_accepted(activator_facts_path: Path, tmp_path: Path) -> None:
    """A .yaml facts document loads like its JSON equivalent."""
    yaml_path = tmp_path / "program.yaml"
    yaml_path.write_text(yaml.safe_dump(_payload(activator_facts_path)), encoding="utf-8")

    program = load_program(yaml_path)

    if len(program.call_sites()) != CALL_SITE_COUNT:
        pytest.fail("YAML document did not load every call site")


def test_duplicate_ids_are_rejected(activator_facts_path: Path) -> None:
    """Duplicated call-site ids fail validation with the id in the message."""
    payload = _payload(activator_facts_path)
    payload["call_sites"].append(copy.deepcopy(payload["call_sites"][0]))

    with pytest.raises(FactsValidationError, match="c01"):
        parse_program(payload)


def test_dangling_local_reference_is_rejected(activator_facts_path: Path) -> None:
    """An argument naming an undeclared local fails validation."""
    payload = _payload(activator_facts_path)
    payload["locals"] = []

    with pytest.raises(FactsValidationError, match="unknown local"):
        parse_program(payload)


def test_parameter_ordinal_out_of_range_is_rejected(activator_facts_path: Path) -> None:
    """Parameter references must point at a declared parameter."""
    payload = _payload(activator_facts_path)
    site = next(site for site in payload["call_sites"] if site["id"] == "c12")
    site["arguments"][0]["ordinal"] = 3

    with pytest.raises(FactsValidationError, match="parameter 3"):
        parse_program(payload)


def test_unknown_expression_kind_is_rejected(activator_facts_path: Path) -> None:
    """Schema violations surface as FactsValidationError."""
    payload = _payload(activator_facts_path)
    payload["call_sites"][2]["arguments"][0]["kind"] = "lambda"

    with pytest.raises(FactsValidationError):
        parse_program(payload)


def test_wrong_schema_version_is_rejected(activator_facts_path: Path) -> None:
    """Only schema version 1 is understood."""
    payload = _payload(activator_facts_path)
    payload["schema_version"] = 2

    with pytest.raises(FactsValidationError):
        parse_program(payload)


def test_unreadable_and_malformed_files(tmp_path: Path) -> None:
    """Missing files and invalid JSON both raise FactsValidationError."""
    with pytest.raises(FactsValidationError):
        load_program(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(FactsValidationError):
        load_program(broken)

    listing = tmp_path / "list.json"
    listing.write_text("[]", encoding="utf-8")
    with pytest.raises(FactsValidationError, match="mapping"):
        load_program(listing)


def test_call_graph_edges_are_keyed_by_call_site(activator_program: ProgramModel) -> None:
    """The caller graph holds one edge per call site, from its enclosing method."""
    graph = activator_program.call_graph

    if graph.number_of_edges() != CALL_SITE_COUNT:
        pytest.fail(f"Expected {CALL_SITE_COUNT} edges, got {graph.number_of_edges()}")
    main_id = "M:ActivatorTest.Program.Main(System.String[])"
    generic_id = "M:ActivatorTest.Program.TryConstruct``1"
    if not graph.has_edge(main_id, generic_id, key="c06"):
        pytest.fail("Missing Main -> TryConstruct<T> edge for c06")
