"""Multi-target jar assembly and native-library placement for multi-project JVM builds."""
from __future__ import annotations

from .cli import main

__all__ = ["main"]
