"""
Shared test fixtures and configuration.
"""

import shutil
from pathlib import Path

import pytest

from infraplane.adapters.mock import MockProvider
from infraplane.adapters.registry import ProviderRegistry


@pytest.fixture
def project_root() -> Path:
    """Return the repository root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def stack_file(tmp_path: Path, fixtures_dir: Path) -> Path:
    """Copy the example stack.yml into an isolated stack root."""
    target = tmp_path / "stack.yml"
    shutil.copy(fixtures_dir / "stack.yml", target)
    return target


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def mock_registry(mock_provider: MockProvider) -> ProviderRegistry:
    """Registry that routes every call to ``mock_provider``."""
    registry = ProviderRegistry()
    registry.set_mock_mode(True, mock_provider)
    return registry
