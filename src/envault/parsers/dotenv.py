"""Dotenv parser: ``KEY=value`` lines to an ordered mapping and back.

Comments and blank lines are not preserved; merging only needs the key/value
pairs and their order.
"""

import re

from envault.errors import ParseError

_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")
_NEEDS_QUOTES_RE = re.compile(r"[\s#'\"]")
_ESCAPE_RE = re.compile(r'\\(["\\])')


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1]:
        if value[0] == '"':
            return _ESCAPE_RE.sub(r"\1", value[1:-1])
        if value[0] == "'":
            return value[1:-1]
    return value


class DotenvParser:
    """Parses and serializes ``.env`` content."""

    def parse(self, content: bytes | str) -> dict[str, str]:
        """Parse dotenv content into an insertion-ordered mapping.

        A key repeated later in the same file overrides the earlier value but
        keeps the earlier position.

        Raises:
            ParseError: On a line without ``=``, an empty key, or undecodable bytes.
        """
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError("content is not valid UTF-8") from e

        values: dict[str, str] = {}
        for line_number, raw in enumerate(content.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export ") :].lstrip()

            key, sep, value = line.partition("=")
            if not sep:
                raise ParseError(f"expected KEY=value, got: {line}", line=line_number)
            key = key.strip()
            if not key:
                raise ParseError("empty key", line=line_number)
            if not _KEY_RE.match(key):
                raise ParseError(f"invalid key name: {key}", line=line_number)

            values[key] = _strip_quotes(value.strip())
        return values

    def serialize(self, values: dict[str, str]) -> bytes:
        """Serialize a mapping to dotenv bytes, one ``KEY=value`` per line."""
        lines = []
        for key, value in values.items():
            if _NEEDS_QUOTES_RE.search(value):
                escaped = value.replace("\\", "\\\\").replace('"', '\\"')
                lines.append(f'{key}="{escaped}"')
            else:
                lines.append(f"{key}={value}")
        return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""
