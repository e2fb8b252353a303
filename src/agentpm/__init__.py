"""agentpm: drive an epic of phases, tasks and tests through a controlled lifecycle."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("agentpm")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from agentpm.engine import EpicEngine
from agentpm.models import CurrentState, Epic, Event, Phase, Task, Test

__all__ = ["CurrentState", "Epic", "EpicEngine", "Event", "Phase", "Task", "Test", "__version__"]
