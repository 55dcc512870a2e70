"""
Pytest fixtures for golf-betslip tests
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.betting.exposure import ExposureCapEngine
from src.betting.kelly import EdgeCalculator
from src.settlement.results_feed import EventResults, FinishRow
from src.storage.bet_store import InMemoryBetStore


@pytest.fixture
def calculator():
    """Edge calculator with default settings"""
    return EdgeCalculator()


@pytest.fixture
def engine(calculator):
    """Exposure cap engine with default settings"""
    return ExposureCapEngine(calculator)


@pytest.fixture
def store():
    """Empty in-memory bet store"""
    return InMemoryBetStore()


@pytest.fixture
def sample_finish_rows():
    """Finish rows with a 6-way tie at 18th"""
    rows = [
        FinishRow(dg_id="100", player_name="Winner Player", finish_position=1, made_cut=True),
        FinishRow(dg_id="101", player_name="Solo Fifth", finish_position=5, made_cut=True),
        FinishRow(dg_id="150", player_name="Late Finisher", finish_position=25, made_cut=True),
        FinishRow(dg_id="199", player_name="Cut Player", finish_position=None, made_cut=False),
    ]
    for i in range(6):
        rows.append(FinishRow(
            dg_id=str(118 + i),
            player_name=f"Tied Player {i}",
            finish_position=18,
            made_cut=True,
        ))
    return rows


@pytest.fixture
def sample_results(sample_finish_rows):
    """EventResults built from sample_finish_rows"""
    return EventResults("evt1", sample_finish_rows)
