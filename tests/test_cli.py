import json
import pytest
from pathlib import Path
from click.testing import CliRunner

from tplengine import __version__
from tplengine.cli.interface import main_cli_group
from tplengine.config import loader


@pytest.fixture(autouse=True)
def no_user_config(tmp_path: Path, monkeypatch):
    """Keeps the developer's own ~/.config/tplengine out of CLI runs."""
    monkeypatch.setattr(loader, "USER_CONFIG_FILE", tmp_path / "no-user-config.toml")


@pytest.fixture
def runner():
    return CliRunner()


def test_version(runner):
    result = runner.invoke(main_cli_group, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestRenderCommand:
    """End-to-end rendering through the `render` command."""

    def test_render_with_vars(self, runner):
        with runner.isolated_filesystem():
            Path("hello.tmpl").write_text("Hello <%= name %>!<%- tag %>")
            result = runner.invoke(main_cli_group, ["render", "hello.tmpl", "--var", "name=World", "--var", "tag=<b>"],
                                   catch_exceptions=False)
        assert result.exit_code == 0
        assert result.output == "Hello World!&lt;b&gt;"

    def test_render_with_json_data(self, runner):
        with runner.isolated_filesystem():
            Path("list.tmpl").write_text("<% for item in items: %>- <%= item %>\n<% end %>")
            Path("data.json").write_text(json.dumps({"items": ["a", "b"]}))
            result = runner.invoke(main_cli_group, ["render", "list.tmpl", "--data", "data.json"],
                                   catch_exceptions=False)
        assert result.exit_code == 0
        assert result.output == "- a\n- b\n"

    def test_vars_override_toml_data(self, runner):
        with runner.isolated_filesystem():
            Path("t.tmpl").write_text("<%= a %>-<%= b %>")
            Path("data.toml").write_text('a = "from-file"\nb = "kept"\n')
            result = runner.invoke(main_cli_group, ["render", "t.tmpl", "-d", "data.toml", "--var", "a=from-cli"],
                                   catch_exceptions=False)
        assert result.output == "from-cli-kept"

    def test_render_from_stdin(self, runner):
        result = runner.invoke(main_cli_group, ["render", "-"], input="<%= 1 + 1 %>", catch_exceptions=False)
        assert result.exit_code == 0
        assert result.output == "2"

    def test_render_to_output_file(self, runner):
        with runner.isolated_filesystem():
            Path("t.tmpl").write_text("<%= greeting %>")
            result = runner.invoke(main_cli_group, ["render", "t.tmpl", "--var", "greeting=hi", "-o", "out.txt"],
                                   catch_exceptions=False)
            assert result.exit_code == 0
            assert Path("out.txt").read_text() == "hi"

    def test_regex_and_variable_options(self, runner):
        with runner.isolated_filesystem():
            Path("path.tmpl").write_text("a/:page['slug']/b")
            result = runner.invoke(
                main_cli_group,
                ["render", "path.tmpl", "--regex", r":([\w\[\]']+)", "--variable", "page", "--var", "slug=home"],
                catch_exceptions=False,
            )
        assert result.output == "a/home/b"

    def test_profile_from_project_config(self, runner):
        with runner.isolated_filesystem():
            Path(".tplengine.toml").write_text(
                "[profiles.curly]\n"
                "interpolate = '\\{\\{=([\\s\\S]+?)\\}\\}'\n"
                "[profiles.curly.data]\n"
                'site = "docs"\n'
            )
            Path("t.tmpl").write_text("{{= site }}/${site}")
            result = runner.invoke(main_cli_group, ["render", "t.tmpl", "--profile", "curly"],
                                   catch_exceptions=False)
        assert result.output == "docs/${site}"

    def test_compile_error_exits_with_code_1(self, runner):
        with runner.isolated_filesystem():
            Path("bad.tmpl").write_text("<% if x %>")
            result = runner.invoke(main_cli_group, ["render", "bad.tmpl"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_render_error_exits_with_code_1(self, runner):
        with runner.isolated_filesystem():
            Path("bad.tmpl").write_text("<%= missing %>")
            result = runner.invoke(main_cli_group, ["render", "bad.tmpl"])
        assert result.exit_code == 1
        assert "NameError" in result.output or "missing" in result.output

    def test_malformed_var(self, runner):
        result = runner.invoke(main_cli_group, ["render", "-", "--var", "novalue"], input="x")
        assert result.exit_code == 2


class TestSourceCommand:
    """The `source` command prints generated Python."""

    def test_plain_source(self, runner):
        with runner.isolated_filesystem():
            Path("t.tmpl").write_text("<%= name %>")
            result = runner.invoke(main_cli_group, ["source", "t.tmpl", "--plain"], catch_exceptions=False)
        assert result.exit_code == 0
        assert result.output.startswith("__p = []\n")
        assert "name" in result.output
        assert "t.tmpl" not in result.output

    def test_highlighted_source(self, runner):
        with runner.isolated_filesystem():
            Path("t.tmpl").write_text("<% for x in xs: %><%= x %><% end %>")
            result = runner.invoke(main_cli_group, ["source", "t.tmpl"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "for x in xs:" in result.output
