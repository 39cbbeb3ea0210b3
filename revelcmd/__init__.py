"""Helpers for building, packaging, watching and testing Revel applications."""

__version__ = "1.1.2"
__all__ = [
    "build",
    "environment",
    "errors",
    "files",
    "testrunner",
    "watcher",
]