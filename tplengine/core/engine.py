# tplengine/core/engine.py
"""
Contains the Engine class: the public entry point for registering helpers
and data, compiling template text, and rendering templates.
"""
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional, Union
import structlog

from tplengine.config.settings import CompileOptions, EngineSettings, SettingsStore
from tplengine.exceptions import ConfigurationError
from tplengine.util import is_identifier, set_value

from .compiler import CompiledTemplate, compile_template
from .delimiters import build_delimiters
from .scope import build_scope, validate_names

log = structlog.get_logger(__name__)

SOURCE_URL_TEMPLATE = "<tplengine.templateSources[{}]>"

class Engine:
    """
    Compiles and renders templates.

    ```python
    engine = Engine()
    engine.data({"first": "Brian"})
    engine.render("<%= last %>, <%= first %>", {"last": "Woodward"})
    # => 'Woodward, Brian'
    ```

    `options` may carry `helpers`, `imports` and `data` plus any compile
    option (`escape`, `evaluate`, `interpolate`, `regex`, `variable`), which
    then apply to every call made through this engine.
    """
    def __init__(self, options: Optional[Mapping] = None, **kwargs: Any):
        merged_options: Dict[str, Any] = dict(options) if isinstance(options, Mapping) else {}
        merged_options.update(kwargs)

        self._settings_store = SettingsStore(merged_options)
        self.imports: Dict[str, Any] = validate_names(merged_options.get("imports"), "Import")
        self.helper_map: Dict[str, Any] = {}
        self.cache: Dict[str, Any] = {}
        self.counter = 0

        self.helpers(merged_options.get("helpers"))
        if merged_options.get("data"):
            self.data(merged_options["data"])
        log.debug("engine_initialized", option_keys=sorted(merged_options))

    @property
    def options(self) -> Dict[str, Any]:
        return self._settings_store.options

    @property
    def settings(self) -> EngineSettings:
        return self._settings_store.settings

    def helper(self, name: Union[str, Mapping], fn: Optional[Callable] = None) -> "Engine":
        """Registers `fn` under `name`. A mapping registers each of its items."""
        if isinstance(name, Mapping):
            return self.helpers(name)
        if not is_identifier(name):
            raise ConfigurationError(f"Helper name {name!r} is not a valid identifier")
        self.helper_map[name] = fn
        log.debug("helper_registered", name=name)
        return self

    def helpers(self, helpers: Optional[Mapping]) -> "Engine":
        if helpers is None:
            return self
        if not isinstance(helpers, Mapping):
            raise ConfigurationError(f"helpers() expects a mapping, got {type(helpers).__name__}")
        for name, fn in helpers.items():
            self.helper(name, fn)
        return self

    def data(self, key: Union[str, Mapping], value: Any = None) -> "Engine":
        """
        Adds data to the cache shared by every render. `key` may be a dotted
        path ("a.b.c"); a mapping adds each of its items.
        """
        if isinstance(key, Mapping):
            for k, v in key.items():
                self.data(k, v)
            return self
        if not isinstance(key, str) or not key:
            raise ConfigurationError(f"Data key must be a non-empty string, got {key!r}")
        set_value(self.cache, key, value)
        log.debug("data_cached", key=key)
        return self

    def effective_options(self, options: Any = None, settings: Any = None) -> CompileOptions:
        return self._settings_store.effective(settings=settings, options=options)

    def _next_source_url(self) -> str:
        self.counter += 1
        return SOURCE_URL_TEMPLATE.format(self.counter)

    def compile(self, text: Any, options: Any = None, settings: Any = None) -> CompiledTemplate:
        """
        Compiles `text` into a CompiledTemplate. `settings` is accepted as a
        third argument for backwards compatibility and is layered under `options`.
        """
        opts = self.effective_options(options, settings)
        if opts.variable and not is_identifier(opts.variable):
            raise ConfigurationError(f"variable {opts.variable!r} is not a valid identifier")

        delimiters = build_delimiters(
            escape=opts.escape, interpolate=opts.interpolate,
            evaluate=opts.evaluate, regex=opts.regex,
        )
        scope = build_scope(opts, self)
        source_url = opts.source_url if opts.source_url is not None else self._next_source_url()
        return compile_template(str(text), delimiters, scope, source_url, variable=opts.variable)

    def build_context(self, locals_: Any = None) -> Dict[str, Any]:
        """Merges the data cache, `locals_` and any nested `imports`/`helpers` into one context."""
        context: Dict[str, Any] = dict(self.cache)
        if isinstance(locals_, Mapping):
            context.update(locals_)
        for nested_key in ("imports", "helpers"):
            nested = context.get(nested_key)
            if isinstance(nested, Mapping):
                context.update(nested)
        return context

    def render(self, template: Any, locals_: Any = None, options: Any = None) -> str:
        """
        Renders `template` with `locals_`. A CompiledTemplate (or any callable)
        is invoked as-is; anything else is compiled first.
        """
        context = self.build_context(locals_)
        fn = template if callable(template) else self.compile(template, options)
        log.debug("rendering_template", source_url=getattr(fn, "source_url", None),
                  context_keys=list(context))
        rendered = fn(context)
        log.debug("template_rendered", source_url=getattr(fn, "source_url", None), length=len(rendered))
        return rendered
