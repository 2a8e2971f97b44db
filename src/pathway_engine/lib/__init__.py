"""
Lib: modules implemented in Python.

Kernel = machinery. Lib = content that ships with the engine.
"""
from .lifecycle import LifecycleModule

__all__ = ["LifecycleModule"]
