"""Runtime module for subprocess supervision and output capture.

This module provides isolated process execution with merged, line-buffered
output and reliable termination of whole process trees.
"""

from __future__ import annotations

from .lines import LineSplitter
from .output_log import OutputLog
from .process_runner import CommandSpec, ManagedProcess
from .tree_kill import kill_tree

__all__ = [
    "CommandSpec",
    "LineSplitter",
    "ManagedProcess",
    "OutputLog",
    "kill_tree",
]
