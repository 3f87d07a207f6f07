"""
Generation CLI Tools

Command-line tools for interacting with the generation service.

Tools:
- progress_monitor: Real-time progress visualization
"""

from .progress_monitor import ProgressMonitor, ProgressPrinter

__all__ = ["ProgressMonitor", "ProgressPrinter"]
