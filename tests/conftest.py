"""
Shared fixtures: scenario trees in memory and on disk, a scratch registry,
and isolation from the user's own config file.
"""

import pytest

from deptree import config
from tests.helpers import scenario_project, scenario_tree


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Never read ~/.config/deptree during tests."""
    monkeypatch.setattr(config, 'CONFIG_FILE', tmp_path / 'user-config.yaml')
    return tmp_path / 'user-config.yaml'


@pytest.fixture
def scenario():
    return scenario_tree()


@pytest.fixture
def project(tmp_path):
    return scenario_project(tmp_path / 'project')


@pytest.fixture
def registry(tmp_path):
    path = tmp_path / 'registry'
    path.mkdir()
    return path
