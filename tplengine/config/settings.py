from dataclasses import dataclass, field, fields as dataclass_fields, asdict
from typing import Any, Dict, Mapping, Optional
import structlog

from tplengine.core.delimiters import (
    PatternLike, RE_ESCAPE, RE_EVALUATE, RE_INTERPOLATE
)

log = structlog.get_logger(__name__)

DEFAULT_VARIABLE = ""

# maps every recognised option key (including aliases) to a CompileOptions attribute.
OPTION_KEY_TO_ATTR_MAP: Dict[str, str] = {
    "escape": "escape",
    "evaluate": "evaluate",
    "interpolate": "interpolate",
    "regex": "regex",
    "imports": "imports",
    "helpers": "helpers",
    "variable": "variable",
    "sourceURL": "source_url",
    "source_url": "source_url",
}

SETTINGS_KEYS = ("escape", "evaluate", "interpolate", "variable")

# construction-time imports and helpers get their own scope layers, so only
# per-call values land in CompileOptions.imports and CompileOptions.helpers.
CALL_ONLY_ATTRS = ("imports", "helpers")

@dataclass
class EngineSettings:
    # instance-level delimiter and variable defaults.
    escape: Optional[PatternLike] = RE_ESCAPE
    evaluate: Optional[PatternLike] = RE_EVALUATE
    interpolate: Optional[PatternLike] = RE_INTERPOLATE
    variable: str = DEFAULT_VARIABLE

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "EngineSettings":
        overrides = {k: options[k] for k in SETTINGS_KEYS if k in options}
        return cls(**overrides)

@dataclass
class CompileOptions:
    # effective options for a single compile call.
    escape: Optional[PatternLike] = RE_ESCAPE
    evaluate: Optional[PatternLike] = RE_EVALUATE
    interpolate: Optional[PatternLike] = RE_INTERPOLATE
    regex: Optional[PatternLike] = None
    imports: Dict[str, Any] = field(default_factory=dict)
    helpers: Dict[str, Any] = field(default_factory=dict)
    variable: str = DEFAULT_VARIABLE
    source_url: Optional[str] = None

def _as_mapping(layer: Any, layer_name: str) -> Mapping[str, Any]:
    if layer is None:
        return {}
    if not isinstance(layer, Mapping):
        log.debug("ignoring_non_mapping_options_layer", layer=layer_name, value_type=type(layer).__name__)
        return {}
    return layer

class SettingsStore:
    """
    Holds an engine's construction options and its default settings, and
    produces the effective options for each call by layering
    instance options <- instance settings <- call settings <- call options.
    Nothing stored here is modified by producing effective options.
    """
    def __init__(self, options: Optional[Mapping[str, Any]] = None):
        self.options: Dict[str, Any] = dict(_as_mapping(options, "instance_options"))
        self.settings = EngineSettings.from_options(self.options)

    def effective(self, settings: Any = None, options: Any = None) -> CompileOptions:
        merged: Dict[str, Any] = {}
        layers = (
            ("instance_options", self.options),
            ("instance_settings", asdict(self.settings)),
            ("call_settings", settings),
            ("call_options", options),
        )
        for layer_name, layer in layers:
            for key, value in _as_mapping(layer, layer_name).items():
                attr = OPTION_KEY_TO_ATTR_MAP.get(key)
                if attr in CALL_ONLY_ATTRS and layer_name.startswith("instance"):
                    continue
                if attr:
                    merged[attr] = value

        for mapping_attr in ("imports", "helpers"):
            value = merged.get(mapping_attr)
            merged[mapping_attr] = dict(value) if isinstance(value, Mapping) else {}
        if merged.get("variable") is None:
            merged["variable"] = DEFAULT_VARIABLE

        valid_attrs = {f.name for f in dataclass_fields(CompileOptions)}
        return CompileOptions(**{k: v for k, v in merged.items() if k in valid_attrs})
