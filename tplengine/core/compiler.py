# tplengine/core/compiler.py
"""
Compiles template text into a CompiledTemplate.

Template text is scanned once with the combined delimiter pattern. Literal
text is accumulated into `__p.append('...')` calls; escape and interpolate
regions are concatenated into the same call, and evaluate regions close the
call, contribute their Python statements verbatim, and open a new one.

Evaluate regions may open a block that spans template text by ending with a
colon, e.g. `<% for item in items: %>...<% end %>`. `end` closes the
innermost block, and `else`/`elif`/`except`/`finally` close the current block
before starting their own.

The generated source is compiled once. Each call executes it in a fresh
namespace made of the template scope plus the context, so context keys are
readable as bare names unless an explicit `variable` is configured.
"""
import io
import re
import textwrap
import tokenize
from collections.abc import Mapping
from types import CodeType
from typing import Any, Dict, List, Pattern, Tuple

import structlog

from tplengine.exceptions import CompileError, EngineError, RenderError
from tplengine.util import escape, escape_string_literal

from .delimiters import ESCAPE_GROUP, INTERPOLATE_GROUP, ES_TEMPLATE_GROUP, EVALUATE_GROUP

log = structlog.get_logger(__name__)

OUTPUT_NAME = "__p"
ESCAPE_NAME = "__e"
CONTEXT_NAME = "obj"
INDENT = "    "
CONTINUATION_KEYWORDS = ("else", "elif", "except", "finally")

RE_BLOCK_END = re.compile(r"^end\s*(?:#.*)?$")
RE_CONTINUATION = re.compile(r"^(?:%s)\b" % "|".join(CONTINUATION_KEYWORDS))

SOURCE_PREAMBLE = f"{OUTPUT_NAME} = []\n"
PRINT_HELPER_SOURCE = (
    "def print(*args, sep=' '):\n"
    f"{INDENT}{OUTPUT_NAME}.append(sep.join(map(str, args)))\n"
)


def _is_code(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


def _opens_block(line: str) -> bool:
    """True when the statement on `line` ends with a colon, ignoring a trailing comment."""
    ignored = {tokenize.COMMENT, tokenize.NL, tokenize.NEWLINE, tokenize.ENDMARKER,
               tokenize.INDENT, tokenize.DEDENT}
    try:
        tokens = [t for t in tokenize.generate_tokens(io.StringIO(line).readline) if t.type not in ignored]
    except (tokenize.TokenError, SyntaxError):
        return line.rstrip().endswith(":")
    return bool(tokens) and tokens[-1].type == tokenize.OP and tokens[-1].string == ":"


def _trim_blank_lines(lines: List[str]) -> List[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def statement_lines(code: str) -> List[str]:
    """
    Splits an evaluate region into lines relative to the region's base
    indentation, without leading or trailing blank lines.

    Code sharing a line with the opening delimiter is indented by the
    delimiter rather than by the author, so that line is stripped on its own
    and the lines below it are dedented as a group. When the first line opens
    a block and the next statement sits at the group's base, the group is the
    block's body.
    """
    raw_lines = code.splitlines()
    if not raw_lines or not raw_lines[0].strip():
        return [line.rstrip() for line in _trim_blank_lines(textwrap.dedent(code).splitlines())]

    first = raw_lines[0].strip()
    rest = [line.rstrip() for line in _trim_blank_lines(textwrap.dedent("\n".join(raw_lines[1:])).splitlines())]
    body_start = next((line for line in rest if _is_code(line)), None)
    if body_start is not None and body_start == body_start.lstrip() and _opens_block(first):
        rest = [INDENT + line if line else line for line in rest]
    return [first] + rest


class SourceBuilder:
    """
    Accumulates generated source while tracking open blocks.

    Output pieces (quoted literals, escape and interpolate expressions) are
    buffered and flushed as a single `__p.append(...)` call when an evaluate
    region or the end of the template is reached. An empty buffer emits
    nothing.
    """

    def __init__(self, source_url: str):
        self.source_url = source_url
        self.parts: List[str] = []
        self.pending: List[str] = []
        self.block_bodies: List[bool] = []

    @property
    def depth(self) -> int:
        return len(self.block_bodies)

    def _error(self, message: str) -> CompileError:
        return CompileError(f"{message} in template '{self.source_url}'",
                            source="".join(self.parts), source_url=self.source_url)

    def _mark_body(self) -> None:
        if self.block_bodies:
            self.block_bodies[-1] = True

    def _emit_line(self, line: str) -> None:
        self.parts.append(f"{INDENT * self.depth}{line}\n")

    def _flush_output(self) -> None:
        if not self.pending:
            return
        self._mark_body()
        self._emit_line(f"{OUTPUT_NAME}.append({' + '.join(self.pending)})")
        self.pending = []

    def _close_block(self) -> None:
        if not self.block_bodies:
            raise self._error("'end' or block continuation without an open block")
        if not self.block_bodies[-1]:
            self._emit_line("pass")
        self.block_bodies.pop()

    def add_literal(self, text: str) -> None:
        if text:
            self.pending.append(f"'{escape_string_literal(text)}'")

    def add_escape(self, expression: str) -> None:
        self.pending.append(f"{ESCAPE_NAME}({expression})")

    def add_interpolate(self, expression: str) -> None:
        self.pending.append(f"('' if (__t := ({expression})) is None else str(__t))")

    def add_statements(self, code: str) -> None:
        self._flush_output()

        lines = statement_lines(code)
        if len(lines) == 1 and RE_BLOCK_END.match(lines[0]):
            self._close_block()
        elif lines:
            if RE_CONTINUATION.match(lines[0]):
                self._close_block()
            for line in lines:
                self._emit_line(line)
            code_lines = [line for line in lines if _is_code(line)]
            if code_lines:
                self._mark_body()
                last = code_lines[-1]
                if last == last.lstrip() and _opens_block(last):
                    self.block_bodies.append(False)

    def finish(self) -> str:
        self._flush_output()
        if self.block_bodies:
            raise self._error(f"{len(self.block_bodies)} block(s) left open, missing 'end'")
        return "".join(self.parts)


class CompiledTemplate:
    """
    A compiled template. Calling it with a context returns the rendered string.

    `source` holds the generated Python source and `source_url` the label used
    as the code object's filename in tracebacks.
    """

    def __init__(self, code: CodeType, source: str, source_url: str, scope: Dict[str, Any],
                 variable: str = "", uses_escape: bool = False):
        self.code = code
        self.source = source
        self.source_url = source_url
        self.scope = scope
        self.variable = variable
        self.uses_escape = uses_escape

    def __repr__(self) -> str:
        return f"<CompiledTemplate {self.source_url}>"

    def __str__(self) -> str:
        return self.source

    def _namespace(self, context: Any) -> Dict[str, Any]:
        namespace = dict(self.scope)
        if self.uses_escape:
            namespace[ESCAPE_NAME] = escape
        if context is None:
            context = {}
        if self.variable:
            namespace[self.variable] = context
        else:
            namespace[CONTEXT_NAME] = context
            if isinstance(context, Mapping):
                namespace.update((k, v) for k, v in context.items() if isinstance(k, str))
        return namespace

    def __call__(self, context: Any = None) -> str:
        namespace = self._namespace(context)
        try:
            exec(self.code, namespace)
        except EngineError:
            raise
        except Exception as e:
            log.error("template_render_failed", source_url=self.source_url,
                      error_type=type(e).__name__, error=str(e))
            raise RenderError(f"Template '{self.source_url}' failed to render: {e}",
                              source=self.source, source_url=self.source_url,
                              original_exception=e) from e
        return "".join(namespace[OUTPUT_NAME])


def generate_source(text: str, delimiters: Pattern[str], source_url: str) -> Tuple[str, bool]:
    """Returns (source, uses_escape) for `text` scanned with `delimiters`."""
    builder = SourceBuilder(source_url)
    uses_escape = uses_print = False
    index = 0

    for match in delimiters.finditer(text):
        builder.add_literal(text[index:match.start()])

        escape_value = match.group(ESCAPE_GROUP)
        interpolate_value = match.group(INTERPOLATE_GROUP) or match.group(ES_TEMPLATE_GROUP)
        evaluate_value = match.group(EVALUATE_GROUP)

        if escape_value:
            uses_escape = True
            builder.add_escape(escape_value)
        if interpolate_value:
            builder.add_interpolate(interpolate_value)
        if evaluate_value:
            uses_print = True
            builder.add_statements(evaluate_value)

        index = match.end()

    body = builder.finish()
    preamble = SOURCE_PREAMBLE + (PRINT_HELPER_SOURCE if uses_print else "")
    return preamble + body, uses_escape


def compile_template(text: str, delimiters: Pattern[str], scope: Dict[str, Any],
                     source_url: str, variable: str = "") -> CompiledTemplate:
    source, uses_escape = generate_source(text, delimiters, source_url)
    try:
        code = compile(source, source_url, "exec")
    except (SyntaxError, ValueError) as e:
        log.error("template_compile_failed", source_url=source_url, error=str(e))
        raise CompileError(f"Failed to compile template '{source_url}': {e}",
                           source=source, source_url=source_url) from e

    log.debug("template_compiled", source_url=source_url, scope_names=list(scope),
              variable=variable or None, uses_escape=uses_escape)
    return CompiledTemplate(code, source, source_url, scope, variable=variable, uses_escape=uses_escape)
