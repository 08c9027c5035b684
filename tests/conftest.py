"""Pytest configuration for the linkerkeep test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from linkerkeep.program.facts import load_program
from linkerkeep.program.model import ProgramModel

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def activator_facts_path() -> Path:
    """Facts document for the sample activator program."""
    return FIXTURES / "activator_program.json"


@pytest.fixture
def activator_program(activator_facts_path: Path) -> ProgramModel:
    """Program model loaded from the sample activator facts document.

    Returns
    -------
    ProgramModel
        Model with five Activator.CreateInstance call sites.
    """
    return load_program(activator_facts_path)
