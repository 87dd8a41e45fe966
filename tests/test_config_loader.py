import pytest
from pathlib import Path

from tplengine.config.loader import load_and_merge_configs, resolve_engine_options
from tplengine.exceptions import ConfigurationError


@pytest.fixture
def user_config(tmp_path: Path) -> Path:
    """A user-level config file outside the project directory."""
    config_file = tmp_path / "home" / "config.toml"
    config_file.parent.mkdir()
    config_file.write_text(
        'variable = "it"\n'
        "evaluate = '<\\?([\\s\\S]+?)\\?>'\n"
        "[profiles.user_only]\n"
        'variable = "u"\n'
    )
    return config_file


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    proj = tmp_path / "proj"
    proj.mkdir()
    return proj


class TestLoadAndMergeConfigs:
    """User and project TOML files merged into one raw config."""

    def test_no_files(self, project_dir: Path, tmp_path: Path):
        assert load_and_merge_configs(cwd=project_dir, user_config_file=tmp_path / "missing.toml") == {}

    def test_project_overrides_user(self, project_dir: Path, user_config: Path):
        (project_dir / ".tplengine.toml").write_text(
            'variable = "data"\n'
            "[profiles.curly]\n"
            "interpolate = '\\{\\{=([\\s\\S]+?)\\}\\}'\n"
        )
        merged = load_and_merge_configs(cwd=project_dir, user_config_file=user_config)
        assert merged["variable"] == "data"
        assert merged["evaluate"] == r"<\?([\s\S]+?)\?>"
        assert set(merged["profiles"]) == {"user_only", "curly"}

    def test_first_project_file_wins(self, project_dir: Path, tmp_path: Path):
        (project_dir / ".tplengine.toml").write_text('variable = "first"\n')
        (project_dir / "tplengine.toml").write_text('variable = "second"\n')
        merged = load_and_merge_configs(cwd=project_dir, user_config_file=tmp_path / "missing.toml")
        assert merged["variable"] == "first"

    def test_pyproject_tool_table(self, project_dir: Path, tmp_path: Path):
        (project_dir / "pyproject.toml").write_text(
            '[project]\nname = "site"\n\n[tool.tplengine]\nvariable = "page"\n'
        )
        merged = load_and_merge_configs(cwd=project_dir, user_config_file=tmp_path / "missing.toml")
        assert merged == {"variable": "page"}

    def test_invalid_toml_is_ignored(self, project_dir: Path, tmp_path: Path):
        (project_dir / ".tplengine.toml").write_text("variable = \n")
        assert load_and_merge_configs(cwd=project_dir, user_config_file=tmp_path / "missing.toml") == {}


class TestResolveEngineOptions:
    """Flattening raw config and profiles into Engine options."""

    RAW = {
        "source_url": "site.tmpl",
        "data": {"title": "Home", "lang": "en"},
        "profiles": {
            "fr": {"data": {"lang": "fr"}, "variable": "page"},
        },
    }

    def test_top_level_keys(self):
        assert resolve_engine_options(self.RAW) == {
            "sourceURL": "site.tmpl",
            "data": {"title": "Home", "lang": "en"},
        }

    def test_profile_overrides_and_merges_data(self):
        options = resolve_engine_options(self.RAW, "fr")
        assert options["variable"] == "page"
        assert options["data"] == {"title": "Home", "lang": "fr"}
        assert self.RAW["data"] == {"title": "Home", "lang": "en"}

    def test_unknown_profile_keeps_defaults(self):
        assert resolve_engine_options(self.RAW, "de") == resolve_engine_options(self.RAW)

    def test_unknown_keys_are_ignored(self):
        assert resolve_engine_options({"colour": "blue", "regex": "%([^%]+)%"}) == {"regex": "%([^%]+)%"}

    def test_data_must_be_a_table(self):
        with pytest.raises(ConfigurationError):
            resolve_engine_options({"data": "nope"})
