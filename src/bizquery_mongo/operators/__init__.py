"""MongoDB operator compilers for compiled query clauses."""

from __future__ import annotations

from .null import compile_null
from .standard import compile_standard
from .string import compile_string

__all__ = [
    "compile_standard",
    "compile_string",
    "compile_null",
]
