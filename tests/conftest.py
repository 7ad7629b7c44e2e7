import pytest

from dal import DAL
from helpers import NOW


@pytest.fixture
def store(tmp_path):
  """Empty SQLite store in a temp dir, clock pinned to NOW"""
  dal = DAL(str(tmp_path / "dogs.db"), clock=lambda: NOW)
  dal.init_database()
  return dal


@pytest.fixture
def broken_store(tmp_path):
  """Store whose database file can't be opened"""
  return DAL(str(tmp_path / "missing" / "dogs.db"), clock=lambda: NOW)
