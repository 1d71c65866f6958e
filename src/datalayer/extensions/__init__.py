"""Datalayer extensions and the method-queue bridge."""

from datalayer.extensions.base import HOOKS, Extension, RenderTimeData
from datalayer.extensions.method_queue import MethodQueue

__all__ = [
    "HOOKS",
    "Extension",
    "MethodQueue",
    "RenderTimeData",
]
