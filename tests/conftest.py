import pytest

from habit.storage import HabitStorage

from helpers import FakeSender


@pytest.fixture
def storage(tmp_path):
    s = HabitStorage(tmp_path / "habits.db")
    yield s
    s.close()


@pytest.fixture
def sender():
    return FakeSender()
