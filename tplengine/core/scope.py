# tplengine/core/scope.py
"""
Computes the names visible to generated template code.

Layers are merged in a fixed order and later layers win on collisions:
call imports, call helpers, engine imports, the `escape` helper, engine
helpers, the engine data cache, and finally the `engine` self-reference.
"""
import weakref
from typing import Any, Dict, List, Mapping, Optional, Tuple, TYPE_CHECKING
import structlog

from tplengine.exceptions import ConfigurationError
from tplengine.util import escape, is_identifier, omit

if TYPE_CHECKING:
    from tplengine.config.settings import CompileOptions
    from tplengine.core.engine import Engine

log = structlog.get_logger(__name__)

SELF_REFERENCE_NAME = "engine"
ESCAPE_HELPER_NAME = "escape"


def validate_names(bindings: Optional[Mapping[str, Any]], kind: str) -> Dict[str, Any]:
    """Copies `bindings`, raising ConfigurationError for any key that is not a usable identifier."""
    if not bindings:
        return {}
    if not isinstance(bindings, Mapping):
        raise ConfigurationError(f"{kind} must be a mapping of names to values, got {type(bindings).__name__}")
    for name in bindings:
        if not is_identifier(name):
            raise ConfigurationError(f"{kind} name {name!r} is not a valid identifier")
    return dict(bindings)


def scope_layers(options: "CompileOptions", engine: "Engine") -> List[Tuple[str, Dict[str, Any]]]:
    # the individual layers, lowest priority first.
    data_layer = {k: v for k, v in omit(engine.cache, SELF_REFERENCE_NAME).items() if is_identifier(k)}
    return [
        ("call_imports", validate_names(options.imports, "Import")),
        ("call_helpers", validate_names(options.helpers, "Helper")),
        ("engine_imports", validate_names(engine.imports, "Import")),
        ("escape_helper", {ESCAPE_HELPER_NAME: escape}),
        ("engine_helpers", omit(engine.helper_map, SELF_REFERENCE_NAME)),
        ("engine_data", data_layer),
        ("self_reference", {SELF_REFERENCE_NAME: weakref.proxy(engine)}),
    ]


def build_scope(options: "CompileOptions", engine: "Engine") -> Dict[str, Any]:
    scope: Dict[str, Any] = {}
    for layer_name, layer in scope_layers(options, engine):
        overridden = [name for name in layer if name in scope]
        if overridden:
            log.debug("scope_names_overridden", layer=layer_name, names=overridden)
        scope.update(layer)
    return scope
