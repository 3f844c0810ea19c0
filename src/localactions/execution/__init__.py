from localactions.execution.base import ExecutionError, SpawnError
from localactions.execution.command import CommandLine, CommandSynthesizer, CommandTarget

__all__ = [
    "CommandLine",
    "CommandSynthesizer",
    "CommandTarget",
    "ExecutionError",
    "SpawnError",
]
