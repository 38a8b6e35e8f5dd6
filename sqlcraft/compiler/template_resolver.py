import operator
import re
from typing import Any, Callable, Mapping, Sequence

from sqlcraft.compiler.compiled_statement import CompiledStatement

# ==================================================
# Markers
# ==================================================

COMPARATORS: Mapping[str, Callable[[float, float], bool]] = {
    "=": operator.eq,
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
    "<>": operator.ne,
}

_BIND_TOKEN = re.compile(r":([A-Za-z]+[0-9]*)(?!\w)")

# Each guard captures: leading line breaks, guard argument(s), inner text, trailing line breaks.
_DIALECT_GUARD = re.compile(
    r"((?:\r?\n)*)-{0,2}\[\[!\s*(\w+)\s*\]\](?:\r?\n)*([\s\S]*?)-{0,2}\[\[!\]\]((?:\r?\n)*)"
)
_VERSION_GUARD = re.compile(
    r"((?:\r?\n)*)-{0,2}\[\[version\s*(<>|<=|>=|=|<|>)\s*([^\]\s]*)\s*\]\]"
    r"(?:\r?\n)*([\s\S]*?)-{0,2}\[\[version\]\]((?:\r?\n)*)",
    re.IGNORECASE,
)
_VERSION_LITERAL = re.compile(r"[+-]?\d+(?:\.\d*)?")
_FRAGMENT_GUARD = re.compile(
    r"((?:\r?\n)*)-{0,2}\[\[\?\s*(\w+)\s*\]\](?:\r?\n)*([\s\S]*?)-{0,2}\[\[\?\]\]((?:\r?\n)*)"
)


def _collapse(keep: bool, leading: str, inner: str, trailing: str) -> str:
    if keep and inner:
        line_break = "\r\n" if leading.startswith("\r\n") else leading[:1]
        return line_break + inner
    return " " if leading or trailing else ""


def compare_version(current: float, comparator: str, literal: str) -> bool:
    """
    Applies a version comparator; unknown comparators and non-numeric literals are false.
    """
    compare = COMPARATORS.get(comparator)
    if compare is None:
        return False
    if not isinstance(literal, str) or not _VERSION_LITERAL.fullmatch(literal):
        return False
    return compare(current, float(literal))


# ==================================================
# Template Resolver
# ==================================================

class TemplateResolver:
    """
    Turns raw statement text into submission-ready text for one connection.

    The passes run in a fixed order: array bind expansion, dialect guards,
    version guards and finally caller-selected fragment guards. The resolver
    holds no state besides the connection dialect and version, so a single
    instance is shared by every statement of a connection.
    """

    def __init__(self, dialect: str, version: float = 0) -> None:
        self.dialect = dialect.lower()
        self.version = float(version or 0)

    def compile(
        self,
        sql: Any,
        binds: dict[str, Any] | None = None,
        fragments: Sequence[str] | None = None,
    ) -> CompiledStatement:
        """
        Runs all passes. `binds` is updated in place with expanded array entries.
        """
        if binds is None:
            binds = {}
        if not isinstance(sql, str) or not sql:
            return CompiledStatement(sql=sql, binds=binds)
        sql = self.expand_binds(sql, binds)
        sql = self.resolve_dialect_guards(sql)
        sql = self.resolve_version_guards(sql)
        sql = self.resolve_fragment_guards(sql, fragments)
        return CompiledStatement(sql=sql, binds=binds)

    def expand_binds(self, sql: str, binds: dict[str, Any]) -> str:
        """
        Replaces `:name` with `:name, :name1, ...` when the bind value is a list or tuple.
        The base name is rebound to the first element, so every occurrence of the
        token expands the same way and a second run leaves the text unchanged.
        """
        arrays = {
            key: list(value)
            for key, value in binds.items()
            if isinstance(value, (list, tuple)) and value
        }
        if not arrays:
            return sql

        def _expand(match: re.Match[str]) -> str:
            key = match.group(1)
            values = arrays.get(key)
            if values is None:
                return match.group(0)
            names = []
            for index, value in enumerate(values):
                name = f"{key}{index or ''}"
                binds[name] = value
                names.append(f":{name}")
            return ", ".join(names)

        return _BIND_TOKEN.sub(_expand, sql)

    def resolve_dialect_guards(self, sql: str) -> str:
        def _replace(match: re.Match[str]) -> str:
            leading, name, inner, trailing = match.groups()
            return _collapse(name.lower() == self.dialect, leading, inner, trailing)

        return _DIALECT_GUARD.sub(_replace, sql)

    def resolve_version_guards(self, sql: str) -> str:
        def _replace(match: re.Match[str]) -> str:
            leading, comparator, literal, inner, trailing = match.groups()
            keep = compare_version(self.version, comparator, literal)
            return _collapse(keep, leading, inner, trailing)

        return _VERSION_GUARD.sub(_replace, sql)

    def resolve_fragment_guards(self, sql: str, fragments: Sequence[str] | None) -> str:
        retained = set(fragments or ())

        def _replace(match: re.Match[str]) -> str:
            leading, key, inner, trailing = match.groups()
            return _collapse(key in retained, leading, inner, trailing)

        return _FRAGMENT_GUARD.sub(_replace, sql)
