"""jabterm TUI package.

Public surface: ``JabtermApp``.
"""
from .app import JabtermApp

__all__ = ["JabtermApp"]
