# tplengine/cli/interface.py
import sys
import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import toml
from click_option_group import optgroup
from rich.console import Console as RichConsole
from rich.syntax import Syntax
import structlog

from tplengine import __version__ as app_version
from tplengine.config.loader import load_and_merge_configs, resolve_engine_options
from tplengine.core.engine import Engine
from tplengine.exceptions import EngineError
from tplengine.logging_setup import configure_logging, level_for_verbosity
from tplengine.output import write_to_file, write_to_stdout

log = structlog.get_logger(__name__)

DELIMITER_OPTION_NAMES = ("escape", "evaluate", "interpolate", "regex", "variable")

def add_delimiter_options(cmd):
    """Applies the delimiter/compile option group to a Click command."""
    decorators = [
        optgroup.group("Delimiter Options", help="Override template delimiters (regexes with one capturing group)."),
        optgroup.option("--escape", "escape", default=None, metavar="REGEX", help="Pattern for HTML-escaped output. Default: <%- expr %>."),
        optgroup.option("--evaluate", "evaluate", default=None, metavar="REGEX", help="Pattern for Python statements. Default: <% stmts %>."),
        optgroup.option("--interpolate", "interpolate", default=None, metavar="REGEX", help="Pattern for raw output. Default: <%= expr %>."),
        optgroup.option("--regex", "regex", default=None, metavar="REGEX", help="Replaces the interpolate pattern entirely (e.g. ':(\\w+)')."),
        optgroup.option("--variable", "variable", default=None, metavar="NAME", help="Expose the context under NAME instead of as bare names."),
        optgroup.option("--profile", "profile", default=None, metavar="NAME", help="Apply a named profile from config file(s)."),
    ]
    for decorator in reversed(decorators):
        cmd = decorator(cmd)
    return cmd

def _read_template_text(template_path: str) -> str:
    if template_path == "-":
        return click.get_text_stream("stdin").read()
    try:
        return Path(template_path).read_text(encoding="utf-8")
    except OSError as e:
        raise click.BadParameter(f"cannot read template '{template_path}': {e}", param_hint="TEMPLATE") from e

def _load_data_file(data_file: Optional[Path]) -> Dict[str, Any]:
    if data_file is None:
        return {}
    try:
        if data_file.suffix.lower() == ".toml":
            loaded = toml.load(data_file)
        else:
            loaded = json.loads(data_file.read_text(encoding="utf-8"))
    except (OSError, ValueError, toml.TomlDecodeError) as e:
        raise click.BadParameter(f"cannot load data from '{data_file}': {e}", param_hint="--data") from e
    if not isinstance(loaded, dict):
        raise click.BadParameter(f"data file '{data_file}' must contain an object/table", param_hint="--data")
    return loaded

def _parse_user_vars(user_vars: Tuple[str, ...]) -> Dict[str, str]:
    parsed: Dict[str, str] = {}
    for item in user_vars:
        if "=" not in item:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--var")
        key, value = item.split("=", 1)
        parsed[key.strip()] = value
    return parsed

def _build_engine(cli_params: Dict[str, Any]) -> Engine:
    raw_configs_from_toml_files = load_and_merge_configs()
    engine_options = resolve_engine_options(raw_configs_from_toml_files, cli_params.get("profile"))
    for name in DELIMITER_OPTION_NAMES:
        if cli_params.get(name) is not None:
            engine_options[name] = cli_params[name]
    log.debug("engine_options_resolved", option_keys=sorted(engine_options))
    return Engine(engine_options)

def _report_engine_error(ctx: click.Context, e: EngineError):
    log.error("handled_engine_error_in_cli", error_type=type(e).__name__, message=str(e))
    click.secho(f"Error: {e}", fg="red", err=True)
    source = getattr(e, "source", None)
    if source and ctx.obj.get("verbosity_level", 0) > 0:
        RichConsole(stderr=True).print(Syntax(source, "python", line_numbers=True))
    sys.exit(1)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option("--verbose", "-v", "verbosity_level", count=True, help="Verbosity: -v info, -vv debug.")
@click.option("--json-logs", "force_json_logs", is_flag=True, default=False, help="Force JSON logs.")
@click.version_option(version=app_version, package_name="tplengine", prog_name="tplengine", help="Show version and exit.")
@click.pass_context
def main_cli_group(ctx: click.Context, verbosity_level: int, force_json_logs: bool):
    """tplengine: render templates with <%= %>, <%- %> and <% %> delimiters
    backed by embedded Python."""
    configure_logging(log_level_str=level_for_verbosity(verbosity_level), force_json_logs=force_json_logs)
    ctx.ensure_object(dict)
    ctx.obj["verbosity_level"] = verbosity_level


@main_cli_group.command("render")
@click.argument("template_path", metavar="TEMPLATE", type=str)
@optgroup.group("Data Options", help="Where the template context comes from.")
@optgroup.option("-d", "--data", "data_file", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path), default=None, help="JSON or TOML file with the template context.")
@optgroup.option("--var", "user_vars", multiple=True, metavar="KEY=VALUE", help="Context variable; overrides values from --data.")
@add_delimiter_options
@click.option("-o", "--output", "output_file", type=click.Path(dir_okay=False, writable=True, path_type=Path), default=None, help="Path to write the output to.")
@click.pass_context
def render_command(ctx: click.Context, template_path: str, data_file: Optional[Path],
                   user_vars: Tuple[str, ...], output_file: Optional[Path], **cli_params: Any):
    """Render TEMPLATE ('-' for stdin) and write the result."""
    template_text = _read_template_text(template_path)
    context = _load_data_file(data_file)
    context.update(_parse_user_vars(user_vars))
    try:
        engine = _build_engine(cli_params)
        rendered = engine.render(template_text, context, {"sourceURL": template_path})
    except EngineError as e:
        _report_engine_error(ctx, e)
        return

    if output_file:
        try:
            write_to_file(output_file, rendered)
        except EngineError as e:
            _report_engine_error(ctx, e)
            return
        click.echo(f"Info: Output written to: {output_file}", err=True)
    else:
        write_to_stdout(rendered)


@main_cli_group.command("source")
@click.argument("template_path", metavar="TEMPLATE", type=str)
@add_delimiter_options
@click.option("--plain", "plain", is_flag=True, default=False, help="Print without syntax highlighting.")
@click.pass_context
def source_command(ctx: click.Context, template_path: str, plain: bool, **cli_params: Any):
    """Show the Python source generated for TEMPLATE."""
    template_text = _read_template_text(template_path)
    try:
        compiled = _build_engine(cli_params).compile(template_text, {"sourceURL": template_path})
    except EngineError as e:
        _report_engine_error(ctx, e)
        return
    if plain:
        write_to_stdout(compiled.source)
    else:
        RichConsole().print(Syntax(compiled.source, "python", line_numbers=True))
