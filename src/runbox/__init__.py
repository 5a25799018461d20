"""runbox: sandboxed multi-language code execution engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from runbox.config import EngineConfig as EngineConfig
    from runbox.runtime.engine import ExecutionEngine as ExecutionEngine

_LAZY_EXPORTS = {
    "EngineConfig": "runbox.config",
    "ExecutionEngine": "runbox.runtime.engine",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'runbox' has no attribute {name!r}")
