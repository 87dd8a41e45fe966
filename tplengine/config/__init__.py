from .settings import CompileOptions, EngineSettings, SettingsStore
from .loader import load_and_merge_configs, resolve_engine_options

__all__ = [
    "CompileOptions",
    "EngineSettings",
    "SettingsStore",
    "load_and_merge_configs",
    "resolve_engine_options",
]
