"""
Shared fixtures for the shift swap service tests.
"""

import json
from pathlib import Path

import pytest
import pytest_asyncio

from shiftswap import database, models

# Load sample data
SAMPLE_DATA_PATH = Path(__file__).parent.parent / "sample_data.json"
with open(SAMPLE_DATA_PATH) as f:
    SAMPLE_DATA = json.load(f)

USERS = {user["id"]: models.Actor(**user) for user in SAMPLE_DATA["users"]}


@pytest.fixture(autouse=True)
def clean_store():
    """
    Every test starts and ends with an empty store.
    """
    database.store.clear()
    yield
    database.store.clear()


@pytest_asyncio.fixture
async def sample_data():
    """
    Fixture that loads the sample schedule into the store.
    """
    for assignment_data in SAMPLE_DATA["assignments"]:
        assignment = models.ShiftAssignment(**assignment_data)
        await database.store.put(database.ASSIGNMENTS, assignment)
    yield


@pytest.fixture
def xavier() -> models.Actor:
    return USERS["u-xavier"]


@pytest.fixture
def yasmin() -> models.Actor:
    return USERS["u-yasmin"]


@pytest.fixture
def zeynep() -> models.Actor:
    return USERS["u-zeynep"]


@pytest.fixture
def pelin() -> models.Actor:
    return USERS["u-pelin"]


@pytest.fixture
def admin() -> models.Actor:
    return USERS["u-admin"]


@pytest.fixture
def second_admin() -> models.Actor:
    return models.Actor(id="u-admin-2", name="Burak Admin", role=models.UserRole.ADMIN)