import re

import pytest

from tplengine.core.delimiters import (
    DEFAULT_DELIMITERS, ESCAPE_GROUP, EVALUATE_GROUP, ES_TEMPLATE_GROUP, INTERPOLATE_GROUP,
    RE_INTERPOLATE, build_delimiters, es_template_enabled,
)
from tplengine.exceptions import ConfigurationError


def matched_groups(pattern, text):
    return [(m.lastindex, m.group(m.lastindex)) for m in pattern.finditer(text) if m.lastindex]


class TestBuildDelimiters:
    """Combining delimiter patterns into a single scanner."""

    def test_defaults_return_precomputed_pattern(self):
        assert build_delimiters() is DEFAULT_DELIMITERS
        assert build_delimiters(interpolate=RE_INTERPOLATE.pattern) is DEFAULT_DELIMITERS

    def test_group_positions(self):
        groups = matched_groups(DEFAULT_DELIMITERS, "<%- a %><%= b %>${c}<% d %>")
        assert groups == [
            (ESCAPE_GROUP, " a "),
            (INTERPOLATE_GROUP, " b "),
            (ES_TEMPLATE_GROUP, "c"),
            (EVALUATE_GROUP, " d "),
        ]

    def test_sentinel_matches_only_at_the_very_end(self):
        matches = list(DEFAULT_DELIMITERS.finditer("text\n"))
        assert len(matches) == 1
        assert matches[0].start() == matches[0].end() == len("text\n")

    def test_regex_replaces_interpolate_slot(self):
        pattern = build_delimiters(regex=r":(\w+)")
        # without the stock interpolate slot, <%= %> falls through to evaluate.
        assert matched_groups(pattern, "a/:foo/<%= b %>") == [(INTERPOLATE_GROUP, "foo"), (EVALUATE_GROUP, "= b ")]

    def test_custom_interpolate_disables_es_template(self):
        pattern = build_delimiters(interpolate=re.compile(r"\{\{([\s\S]+?)\}\}"))
        assert matched_groups(pattern, "${a}{{ b }}") == [(INTERPOLATE_GROUP, " b ")]

    def test_disabled_slot_keeps_group_positions(self):
        pattern = build_delimiters(escape=None)
        assert pattern.groups == 4
        assert matched_groups(pattern, "<%- a %>") == [(EVALUATE_GROUP, "- a ")]

    @pytest.mark.parametrize("bad_pattern", [r"<%([\s\S]+?)(%>)", r"<%[\s\S]+?%>", r"<%(["])
    def test_invalid_patterns_are_rejected(self, bad_pattern):
        with pytest.raises(ConfigurationError):
            build_delimiters(evaluate=bad_pattern)


class TestEsTemplateEligibility:
    """ES literal delimiters depend on the stock interpolate delimiter."""

    def test_enabled_only_with_default_interpolate(self):
        assert es_template_enabled(RE_INTERPOLATE)
        assert es_template_enabled(RE_INTERPOLATE.pattern)
        assert not es_template_enabled(r"\{\{([\s\S]+?)\}\}")
        assert not es_template_enabled(None)

    def test_regex_disables_es_template(self):
        assert not es_template_enabled(RE_INTERPOLATE, regex=r"%([^%]+)%")
