# tplengine/core/delimiters.py
"""
Builds the single regular expression used to tokenize template text.

The combined pattern always has four capturing groups, in this order:
escape, interpolate, ES template literal, evaluate. A delimiter that is
disabled (or, for ES literals, not eligible) still occupies its group
position with a pattern that never matches, so the compiler can dispatch
on group position alone. The last alternative is an end-of-input sentinel,
which guarantees the scan terminates and flushes any trailing text.
"""
import re
from typing import Optional, Pattern, Union

import structlog

from tplengine.exceptions import ConfigurationError

log = structlog.get_logger(__name__)

PatternLike = Union[str, Pattern[str]]

RE_ESCAPE = re.compile(r"<%-([\s\S]+?)%>")
RE_EVALUATE = re.compile(r"<%([\s\S]+?)%>")
RE_INTERPOLATE = re.compile(r"<%=([\s\S]+?)%>")
# ES template literal delimiters, e.g. ${value}.
RE_ES_TEMPLATE = re.compile(r"\$\{([^\\}]*(?:\\.[^\\}]*)*)\}")
# keeps a group position occupied without ever matching.
RE_NO_MATCH = re.compile(r"((?!))")
# `$` would also match before a trailing newline.
RE_END_SENTINEL = r"\Z"

ESCAPE_GROUP = 1
INTERPOLATE_GROUP = 2
ES_TEMPLATE_GROUP = 3
EVALUATE_GROUP = 4


def pattern_source(pattern: Optional[PatternLike]) -> Optional[str]:
    if pattern is None:
        return None
    return pattern.pattern if isinstance(pattern, re.Pattern) else str(pattern)


def _checked_source(name: str, pattern: Optional[PatternLike]) -> str:
    """Returns the regex text for one delimiter slot, validating its group count."""
    source = pattern_source(pattern)
    if not source:
        return RE_NO_MATCH.pattern
    try:
        group_count = re.compile(source).groups
    except re.error as e:
        raise ConfigurationError(f"Invalid '{name}' delimiter pattern {source!r}: {e}") from e
    if group_count != 1:
        raise ConfigurationError(
            f"The '{name}' delimiter pattern must have exactly one capturing group, "
            f"found {group_count}: {source!r}")
    return source


def _join(escape: str, interpolate: str, es_template: str, evaluate: str) -> Pattern[str]:
    return re.compile("|".join([escape, interpolate, es_template, evaluate, RE_END_SENTINEL]))


DEFAULT_DELIMITERS = _join(
    RE_ESCAPE.pattern, RE_INTERPOLATE.pattern, RE_ES_TEMPLATE.pattern, RE_EVALUATE.pattern)


def es_template_enabled(interpolate: Optional[PatternLike], regex: Optional[PatternLike] = None) -> bool:
    # ES literals only work alongside the stock interpolate delimiter.
    return not regex and pattern_source(interpolate) == RE_INTERPOLATE.pattern


def build_delimiters(
    escape: Optional[PatternLike] = RE_ESCAPE,
    interpolate: Optional[PatternLike] = RE_INTERPOLATE,
    evaluate: Optional[PatternLike] = RE_EVALUATE,
    regex: Optional[PatternLike] = None,
) -> Pattern[str]:
    """
    Combines the delimiter patterns into one pattern. When `regex` is given it
    replaces the interpolate slot entirely. Returns the precomputed default
    pattern when nothing was overridden.
    """
    use_es_template = es_template_enabled(interpolate, regex)
    if (use_es_template
            and pattern_source(escape) == RE_ESCAPE.pattern
            and pattern_source(evaluate) == RE_EVALUATE.pattern):
        return DEFAULT_DELIMITERS

    combined = _join(
        _checked_source("escape", escape),
        _checked_source("regex" if regex else "interpolate", regex or interpolate),
        RE_ES_TEMPLATE.pattern if use_es_template else RE_NO_MATCH.pattern,
        _checked_source("evaluate", evaluate),
    )
    log.debug("custom_delimiters_built", pattern=combined.pattern, es_template=use_es_template)
    return combined
