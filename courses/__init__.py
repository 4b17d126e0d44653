"""
Courses package.

This package contains:
- Item tree and course models
- Course source adapters (HTTP snapshot endpoint)
- JSON snapshot store with merge-on-save
"""

__version__ = "1.0.0"
