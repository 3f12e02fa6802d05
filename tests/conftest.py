"""Pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from loom.checkpoint import CheckpointManager, MemorySink  # noqa: E402
from loom.config import LoomConfig, set_config  # noqa: E402
from loom.context import ContextRegistry, ContextVarStorage  # noqa: E402
from loom.workflow import Workflow  # noqa: E402


@pytest.fixture(autouse=True)
def reset_config():
    """Give each test default configuration, independent of the environment."""
    set_config(LoomConfig())

    yield

    set_config(None)


@pytest.fixture
def registry():
    """A private context registry so tests never share frames or outputs."""
    return ContextRegistry(storage=ContextVarStorage())


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def manager(sink):
    """Checkpoint manager with publishing enabled into a memory sink."""
    return CheckpointManager(sink=sink, enabled=True)


@pytest.fixture
def run(registry, manager):
    """Run an element as a workflow bound to the test registry and manager."""

    async def _run(element):
        return await Workflow(element, registry=registry, checkpoint_manager=manager).run()

    return _run
