import keyword
import re
from typing import Any, Dict, Iterable, MutableMapping, Optional
import structlog

log = structlog.get_logger(__name__)

# used to match html entities and html characters.
RE_ESCAPED_HTML = re.compile(r"&(?:amp|lt|gt|quot|#39|#96);")
RE_UNESCAPED_HTML = re.compile(r"[&<>\"'`]")

# characters that cannot appear raw inside a single-quoted python literal.
RE_UNESCAPED_STRING = re.compile("['\n\r\u2028\u2029\\\\\0]")

HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
    "`": "&#96;",
}

HTML_UNESCAPES = {entity: char for char, entity in HTML_ESCAPES.items()}

STRING_ESCAPES = {
    "\\": "\\",
    "'": "'",
    "\n": "n",
    "\r": "r",
    "\u2028": "u2028",
    "\u2029": "u2029",
    "\0": "x00",
}

def to_str(value: Any) -> str:
    # converts value to a string; None becomes an empty string.
    return "" if value is None else str(value)

def escape(value: Any) -> str:
    """
    Converts the characters "&", "<", ">", '"', "'" and "`" in `value` to
    their corresponding HTML entities. None renders as an empty string.
    """
    text = to_str(value)
    if text and RE_UNESCAPED_HTML.search(text):
        return RE_UNESCAPED_HTML.sub(lambda m: HTML_ESCAPES[m.group(0)], text)
    return text

def unescape(value: Any) -> str:
    # inverse of escape(): converts the known html entities back to characters.
    text = to_str(value)
    if text and RE_ESCAPED_HTML.search(text):
        return RE_ESCAPED_HTML.sub(lambda m: HTML_UNESCAPES[m.group(0)], text)
    return text

def escape_string_char(char: str) -> str:
    return "\\" + STRING_ESCAPES[char]

def escape_string_literal(text: str) -> str:
    # makes `text` safe to embed between single quotes in generated source.
    return RE_UNESCAPED_STRING.sub(lambda m: escape_string_char(m.group(0)), text)

def is_identifier(name: Any) -> bool:
    return isinstance(name, str) and name.isidentifier() and not keyword.iskeyword(name)

def set_value(target: MutableMapping[str, Any], path: str, value: Any) -> MutableMapping[str, Any]:
    """
    Sets `value` on `target` at the dotted `path`, creating intermediate dicts.
    A non-dict value found along the path is replaced.
    """
    parts = path.split(".")
    current = target
    for part in parts[:-1]:
        nested = current.get(part)
        if not isinstance(nested, dict):
            nested = {}
            current[part] = nested
        current = nested
    current[parts[-1]] = value
    return target

def omit(obj: Optional[Dict[str, Any]], keys: Iterable[str]) -> Dict[str, Any]:
    # returns a shallow copy of obj without the given keys.
    if not obj:
        return {}
    excluded = {keys} if isinstance(keys, str) else set(keys)
    return {k: v for k, v in obj.items() if k not in excluded}
