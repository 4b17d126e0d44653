"""
Scheduler package for course polling and change detection.

This package contains:
- Structural snapshot diff
- Deadline window tracking
- Poll cycle coordination
- Alerting sinks
- Staggered interval scheduler
"""

__version__ = "1.0.0"
