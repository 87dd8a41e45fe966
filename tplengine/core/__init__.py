# tplengine/core/__init__.py
"""
Template compilation core: delimiter matching, scope building, code
generation and the Engine that ties them together.
"""
from .engine import Engine
from .compiler import CompiledTemplate, compile_template
from .delimiters import build_delimiters, DEFAULT_DELIMITERS
from .scope import build_scope

__all__ = [
    "Engine",
    "CompiledTemplate",
    "compile_template",
    "build_delimiters",
    "DEFAULT_DELIMITERS",
    "build_scope",
]
