import logging
import re
from pathlib import Path
from urllib.parse import urlsplit

from .errors import ScriptGenerationError
from .models import BODYLESS_METHODS, HttpMethod, RequestSpec, ScriptText

logger = logging.getLogger(__name__)

_SCRIPT_HEADER = "-- Generated by wrk-bench. Do not edit.\n"

_REQUEST_TEMPLATE = """
-- request() is called by wrk for every request and must return the raw
-- HTTP request to send.
local method = {method}
local path = {path}
local headers = {{}}
{headers}local body = {body}

request = function()
    return wrk.format(method, path, headers, body)
end
"""

# done() runs after wrk printed its own report. It always prints the error
# breakdown, which wrk omits from its report when every request succeeded.
DONE_HOOK = """
-- done() is called once at the end of the run.
done = function(summary, latency, requests)
    local errors = summary.errors
    io.write(string.format(
        "Errors: total %d, connect %d, read %d, write %d, timeout %d, status %d\\n",
        errors.connect + errors.read + errors.write + errors.timeout + errors.status,
        errors.connect,
        errors.read,
        errors.write,
        errors.timeout,
        errors.status
    ))
end
"""

_USER_DONE_PATTERN = re.compile(r"^\s*(?:function\s+done\s*\(|done\s*=)", re.MULTILINE)


def lua_string(value: str | bytes) -> str:
    """Render ``value`` as a double-quoted Lua string literal.

    Bytes outside printable ASCII are written as ``\\ddd`` decimal escapes,
    which Lua 5.1/LuaJIT reads back byte for byte.
    """
    data = value.encode("utf-8") if isinstance(value, str) else value
    out = ['"']
    for byte in data:
        if byte == 0x22:
            out.append('\\"')
        elif byte == 0x5C:
            out.append("\\\\")
        elif byte == 0x0A:
            out.append("\\n")
        elif byte == 0x0D:
            out.append("\\r")
        elif byte == 0x09:
            out.append("\\t")
        elif 0x20 <= byte < 0x7F:
            out.append(chr(byte))
        else:
            out.append(f"\\{byte:03d}")
    out.append('"')
    return "".join(out)


def _request_target(url: str) -> str:
    if not url or any(ch.isspace() for ch in url):
        raise ScriptGenerationError(f"Invalid URL: {url!r}")
    try:
        parts = urlsplit(url)
        # Accessing .port validates it
        parts.port  # noqa: B018
    except ValueError as exc:
        raise ScriptGenerationError(f"Invalid URL {url!r}: {exc}") from exc
    if parts.scheme not in ("http", "https"):
        raise ScriptGenerationError(f"URL must use http or https: {url!r}")
    if not parts.hostname:
        raise ScriptGenerationError(f"URL has no host: {url!r}")
    target = parts.path or "/"
    if parts.query:
        target = f"{target}?{parts.query}"
    return target


def _validate_header(name: str, value: str) -> None:
    if not name or any(ch in name for ch in "\r\n:") or name.strip() != name:
        raise ScriptGenerationError(f"Invalid header name: {name!r}")
    if "\r" in value or "\n" in value:
        raise ScriptGenerationError(f"Header {name!r} value contains a line break")


class ScriptGenerator:
    """Builds the Lua script wrk runs for a benchmark.

    Output depends only on the request spec, so identical specs always give
    byte-identical scripts.
    """

    def generate(self, spec: RequestSpec) -> ScriptText:
        method = HttpMethod.parse(spec.method)
        target = _request_target(spec.url)

        if spec.body and method in BODYLESS_METHODS:
            logger.warning("Unusual request: %s with a %d byte body", method.value, len(spec.body))

        header_lines = []
        for name, value in spec.header_items():
            _validate_header(name, value)
            header_lines.append(f"headers[{lua_string(name)}] = {lua_string(value)}\n")

        request = _REQUEST_TEMPLATE.format(
            method=lua_string(method.value),
            path=lua_string(target),
            headers="".join(header_lines),
            body=lua_string(spec.body) if spec.body is not None else "nil",
        )
        return ScriptText(text=_SCRIPT_HEADER + request + DONE_HOOK, url=spec.url)

    def from_file(self, path: str | Path, url: str) -> ScriptText:
        """Wrap a user-written Lua script, appending the summary hook.

        The script must not define ``done`` itself.
        """
        _request_target(url)
        script_path = Path(path)
        if not script_path.is_file():
            logger.error("Lua script %s not found (cwd: %s)", script_path, Path.cwd())
            raise ScriptGenerationError(f"Lua script not found: {script_path}")
        try:
            source = script_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ScriptGenerationError(f"Cannot read Lua script {script_path}: {exc}") from exc
        if _USER_DONE_PATTERN.search(source):
            raise ScriptGenerationError(
                f"Lua script {script_path} defines done(), which wrk-bench reserves"
            )
        if not source.endswith("\n"):
            source += "\n"
        return ScriptText(text=source + DONE_HOOK, url=url)


__all__ = ["DONE_HOOK", "ScriptGenerator", "lua_string"]
