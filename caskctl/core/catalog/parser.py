"""
Descriptor loader — cask text ⇄ PackageDescriptor.

Parsing is pure: no filesystem, no network.  The accepted shape is a
single block::

    cask "<token>" do
      version "<string>"
      sha256 "<hex>" | :no_check
      url "<url>"
      name "<string>"            # repeatable, first is canonical
      desc "<string>"
      homepage "<url>"
      pkg "<path>"[, allow_untrusted: true]
      uninstall pkgutil: "<id>"[, delete: ..., rmdir: ...]
      zap trash: "<path>"[, delete: ..., rmdir: ...]
    end

Every source line is kept on the descriptor's layout, so
``dump_descriptor(load_descriptor(text)) == text`` for any text the
loader accepts.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from caskctl.core.errors import DuplicateField, MalformedDescriptor, UnsupportedDirective
from caskctl.core.models.descriptor import (
    IDENTIFIER_RE,
    SHA256_RE,
    Checksum,
    CleanupSpec,
    InstallTarget,
    LayoutLine,
    PackageDescriptor,
    UninstallSpec,
)

logger = logging.getLogger(__name__)

# ── Grammar tables ──────────────────────────────────────────────

REPEATABLE = {"name"}
REQUIRED = ("version", "sha256", "url", "name", "pkg", "uninstall")
STRING_STANZAS = {"version", "url", "name", "desc", "homepage"}

# Allowed options per stanza (key: → value)
STANZA_OPTIONS: dict[str, set[str]] = {
    "version": set(),
    "sha256": set(),
    "url": set(),
    "name": set(),
    "desc": set(),
    "homepage": set(),
    "pkg": {"allow_untrusted"},
    "uninstall": {"pkgutil", "delete", "rmdir"},
    "zap": {"trash", "delete", "rmdir"},
}

# Canonical stanza groups, separated by a blank line when rendered
CANONICAL_GROUPS: tuple[tuple[str, ...], ...] = (
    ("version", "sha256"),
    ("url", "name", "desc", "homepage"),
    ("pkg",),
    ("uninstall",),
    ("zap",),
)

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>[\ \t\r]+)
    | (?P<comment>\#.*)
    | (?P<string>"(?:[^"\\]|\\.)*")
    | (?P<symbol>:[a-z_]+)
    | (?P<key>[a-z_]+:)(?=[\ \t\r]|$)
    | (?P<word>[A-Za-z0-9_.\-/]+)
    | (?P<punct>[\[\],])
    """,
    re.VERBOSE,
)

_ESCAPES = {"\\": "\\", '"': '"', "n": "\n", "t": "\t", "#": "#"}
_INTERPOLATION_RE = re.compile(r"#\{([^}]*)\}")
_PLACEHOLDER = "\x00"


@dataclass
class Token:
    kind: str
    text: str
    value: Any = None


@dataclass
class _Stanza:
    key: str
    lineno: int
    text: str
    positional: list[Any] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    index: int = 0


# ── Tokenizer ───────────────────────────────────────────────────


def _unescape(literal: str, *, lineno: int, ctx: dict[str, Any]) -> str:
    """Decode a quoted literal.  ``#{...}`` is kept for later expansion;
    an escaped ``\\#`` becomes a placeholder so it survives expansion."""
    body = literal[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            nxt = body[i + 1] if i + 1 < len(body) else ""
            if nxt not in _ESCAPES:
                raise MalformedDescriptor(
                    f"unknown escape sequence '\\{nxt}'", line=lineno, **ctx
                )
            out.append(_PLACEHOLDER if nxt == "#" else _ESCAPES[nxt])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def tokenize(line: str, *, lineno: int = 0, ctx: dict[str, Any] | None = None) -> list[Token]:
    """Split one source line into tokens, dropping whitespace and comments."""
    ctx = ctx or {}
    tokens: list[Token] = []
    pos = 0
    while pos < len(line):
        m = _TOKEN_RE.match(line, pos)
        if m is None:
            if line[pos] == '"':
                raise MalformedDescriptor("unterminated string", line=lineno, **ctx)
            raise MalformedDescriptor(
                f"unexpected character {line[pos]!r}", line=lineno, **ctx
            )
        kind = m.lastgroup or ""
        text = m.group()
        pos = m.end()
        if kind in ("ws", "comment"):
            continue
        if kind == "string":
            tokens.append(Token(kind, text, _unescape(text, lineno=lineno, ctx=ctx)))
        elif kind == "key":
            tokens.append(Token(kind, text, text[:-1]))
        else:
            tokens.append(Token(kind, text, text))
    return tokens


# ── Argument parsing ────────────────────────────────────────────


class _ArgReader:
    """Recursive-descent reader for ``value (, value | key: value)*``."""

    def __init__(self, tokens: list[Token], *, stanza: str, lineno: int, ctx: dict[str, Any]):
        self._tokens = tokens
        self._pos = 0
        self._stanza = stanza
        self._lineno = lineno
        self._ctx = ctx

    def _malformed(self, message: str) -> MalformedDescriptor:
        return MalformedDescriptor(f"{self._stanza}: {message}", line=self._lineno, **self._ctx)

    def _peek(self) -> Token | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> Token:
        tok = self._peek()
        if tok is None:
            raise self._malformed("unexpected end of line")
        self._pos += 1
        return tok

    def read(self) -> tuple[list[Any], dict[str, Any]]:
        positional: list[Any] = []
        options: dict[str, Any] = {}
        if self._peek() is None:
            return positional, options
        while True:
            tok = self._peek()
            if tok is None:
                raise self._malformed("trailing ','")
            if tok.kind == "key":
                self._next()
                if tok.value in options:
                    raise DuplicateField(
                        f"{self._stanza}: option '{tok.value}' given twice",
                        line=self._lineno,
                        **self._ctx,
                    )
                options[tok.value] = self._value()
            else:
                if options:
                    raise self._malformed("positional argument after options")
                positional.append(self._value())
            sep = self._peek()
            if sep is None:
                return positional, options
            if sep.text != ",":
                raise self._malformed(f"expected ',' but found {sep.text!r}")
            self._next()

    def _value(self) -> Any:
        tok = self._next()
        if tok.kind == "string":
            return tok.value
        if tok.kind == "symbol":
            return tok
        if tok.kind == "word":
            if tok.text == "true":
                return True
            if tok.text == "false":
                return False
            return tok
        if tok.text == "[":
            items: list[Any] = []
            if self._peek() is not None and self._peek().text == "]":  # type: ignore[union-attr]
                self._next()
                return items
            while True:
                items.append(self._value())
                closing = self._next()
                if closing.text == "]":
                    return items
                if closing.text != ",":
                    raise self._malformed(f"expected ',' or ']' but found {closing.text!r}")
        raise self._malformed(f"unexpected {tok.text!r}")


# ── Loader ──────────────────────────────────────────────────────


def load_descriptor(text: str, *, source: str | None = None) -> PackageDescriptor:
    """Parse descriptor text into a validated PackageDescriptor.

    Args:
        text: Full descriptor source.
        source: Where the text came from, for error messages.

    Raises:
        MalformedDescriptor: Syntax error or a required stanza is missing.
        UnsupportedDirective: Unknown stanza or stanza option.
        DuplicateField: A non-repeatable stanza appears twice.
    """
    ctx: dict[str, Any] = {"source": source}
    trailing_newline = text.endswith("\n")
    lines = text.split("\n")
    if trailing_newline:
        lines.pop()

    layout: list[tuple[str, str, _Stanza | None]] = []   # (kind, text, stanza)
    stanzas: dict[str, list[_Stanza]] = {}
    identifier: str | None = None
    phase = "before"

    for lineno, line in enumerate(lines, start=1):
        tokens = tokenize(line, lineno=lineno, ctx=ctx)

        if not tokens:
            layout.append(("raw", line, None))
            continue

        if phase == "before":
            identifier = _read_header(tokens, lineno=lineno, ctx=ctx)
            ctx["identifier"] = identifier
            layout.append(("header", line, None))
            phase = "body"
            continue

        if phase == "after":
            raise MalformedDescriptor("content after 'end'", line=lineno, **ctx)

        head = tokens[0]
        if head.kind == "word" and head.text == "end" and len(tokens) == 1:
            layout.append(("end", line, None))
            phase = "after"
            continue

        stanza = _read_stanza(tokens, line, lineno=lineno, ctx=ctx)
        seen = stanzas.setdefault(stanza.key, [])
        if seen and stanza.key not in REPEATABLE:
            raise DuplicateField(
                f"'{stanza.key}' already set on line {seen[0].lineno}",
                line=lineno,
                **ctx,
            )
        stanza.index = len(seen)
        seen.append(stanza)
        layout.append(("directive", line, stanza))

    if phase == "before" or identifier is None:
        raise MalformedDescriptor("no 'cask \"<token>\" do' block found", **ctx)
    if phase == "body":
        raise MalformedDescriptor("missing 'end'", line=len(lines), **ctx)

    for key in REQUIRED:
        if key not in stanzas:
            raise MalformedDescriptor(f"missing required stanza '{key}'", **ctx)

    values = _build_values(stanzas, ctx=ctx)

    layout_lines: list[LayoutLine] = []
    for kind, line_text, stanza in layout:
        if stanza is None:
            key = {"header": "cask", "end": "end"}.get(kind)
            value = identifier if kind == "header" else None
            layout_lines.append(LayoutLine(kind="raw", text=line_text, key=key, value=value))
            continue
        value = values[stanza.key]
        if stanza.key == "name":
            value = value[stanza.index]
        layout_lines.append(
            LayoutLine(
                kind="directive",
                text=line_text,
                key=stanza.key,
                index=stanza.index,
                value=value,
            )
        )

    try:
        descriptor = PackageDescriptor(
            identifier=identifier,
            version=values["version"],
            checksum=values["sha256"],
            source_url=values["url"],
            display_names=tuple(values["name"]),
            description=values.get("desc"),
            homepage_url=values.get("homepage"),
            install_target=values["pkg"],
            uninstall_spec=values["uninstall"],
            post_removal_cleanup=values.get("zap"),
            layout=tuple(layout_lines),
            trailing_newline=trailing_newline,
        )
    except ValidationError as e:
        raise MalformedDescriptor(_first_error(e), **ctx) from e

    logger.debug("Loaded descriptor %s %s from %s", identifier, descriptor.version, source or "<text>")
    return descriptor


def load_descriptor_file(path: Path) -> PackageDescriptor:
    """Read and parse a descriptor file (UTF-8)."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedDescriptor(f"cannot read descriptor: {e}", source=str(path)) from e
    return load_descriptor(text, source=str(path))


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    msg = str(err.get("msg", "invalid value")).removeprefix("Value error, ")
    return f"{loc}: {msg}" if loc else msg


def _read_header(tokens: list[Token], *, lineno: int, ctx: dict[str, Any]) -> str:
    if (
        len(tokens) != 3
        or tokens[0].text != "cask"
        or tokens[1].kind != "string"
        or tokens[2].text != "do"
    ):
        raise MalformedDescriptor("expected 'cask \"<token>\" do'", line=lineno, **ctx)
    identifier = tokens[1].value
    if not IDENTIFIER_RE.match(identifier):
        raise MalformedDescriptor(f"invalid cask token {identifier!r}", line=lineno, **ctx)
    return identifier


def _read_stanza(tokens: list[Token], line: str, *, lineno: int, ctx: dict[str, Any]) -> _Stanza:
    head = tokens[0]
    if head.kind != "word":
        raise MalformedDescriptor(f"expected a stanza name, found {head.text!r}", line=lineno, **ctx)
    key = head.text
    if key not in STANZA_OPTIONS:
        raise UnsupportedDirective(f"unsupported stanza '{key}'", line=lineno, **ctx)

    positional, options = _ArgReader(tokens[1:], stanza=key, lineno=lineno, ctx=ctx).read()
    unknown = set(options) - STANZA_OPTIONS[key]
    if unknown:
        raise UnsupportedDirective(
            f"{key}: unsupported option(s) {', '.join(sorted(unknown))}",
            line=lineno,
            **ctx,
        )
    return _Stanza(key=key, lineno=lineno, text=line, positional=positional, options=options)


# ── Stanza values ───────────────────────────────────────────────


def _build_values(stanzas: dict[str, list[_Stanza]], *, ctx: dict[str, Any]) -> dict[str, Any]:
    version_stanza = stanzas["version"][0]
    version = _single_string(version_stanza, ctx=ctx)
    if _PLACEHOLDER in version or _INTERPOLATION_RE.search(version):
        raise MalformedDescriptor(
            "version cannot interpolate", line=version_stanza.lineno, **ctx
        )

    def expand(value: str, stanza: _Stanza) -> str:
        def repl(m: re.Match[str]) -> str:
            if m.group(1) != "version":
                raise MalformedDescriptor(
                    f"{stanza.key}: unknown interpolation '#{{{m.group(1)}}}'",
                    line=stanza.lineno,
                    **ctx,
                )
            return version

        return _INTERPOLATION_RE.sub(repl, value).replace(_PLACEHOLDER, "#")

    values: dict[str, Any] = {"version": version}

    for key in ("url", "desc", "homepage"):
        if key in stanzas:
            stanza = stanzas[key][0]
            values[key] = expand(_single_string(stanza, ctx=ctx), stanza)

    values["name"] = [expand(_single_string(s, ctx=ctx), s) for s in stanzas["name"]]
    values["sha256"] = _checksum(stanzas["sha256"][0], ctx=ctx)

    pkg = stanzas["pkg"][0]
    allow_untrusted = pkg.options.get("allow_untrusted", False)
    if not isinstance(allow_untrusted, bool):
        raise MalformedDescriptor("pkg: allow_untrusted must be true or false", line=pkg.lineno, **ctx)
    values["pkg"] = InstallTarget(
        path=expand(_single_string(pkg, ctx=ctx), pkg),
        allow_untrusted=allow_untrusted,
    )

    uninstall = stanzas["uninstall"][0]
    values["uninstall"] = UninstallSpec(**_path_options(uninstall, expand, ctx=ctx))

    if "zap" in stanzas:
        zap = stanzas["zap"][0]
        values["zap"] = CleanupSpec(**_path_options(zap, expand, ctx=ctx))

    return values


def _single_string(stanza: _Stanza, *, ctx: dict[str, Any]) -> str:
    if len(stanza.positional) != 1 or not isinstance(stanza.positional[0], str):
        raise MalformedDescriptor(
            f"{stanza.key}: expected exactly one quoted string", line=stanza.lineno, **ctx
        )
    return stanza.positional[0]


def _checksum(stanza: _Stanza, *, ctx: dict[str, Any]) -> Checksum:
    if len(stanza.positional) != 1:
        raise MalformedDescriptor("sha256: expected a digest or :no_check", line=stanza.lineno, **ctx)
    arg = stanza.positional[0]
    if isinstance(arg, Token) and arg.kind == "symbol":
        if arg.text != ":no_check":
            raise MalformedDescriptor(
                f"sha256: unknown symbol {arg.text}", line=stanza.lineno, **ctx
            )
        return Checksum.skip()
    digest = arg if isinstance(arg, str) else getattr(arg, "text", "")
    if not isinstance(digest, str) or not SHA256_RE.match(digest):
        raise MalformedDescriptor(
            "sha256: expected 64 lowercase hex characters", line=stanza.lineno, **ctx
        )
    return Checksum.digest(digest)


def _path_options(stanza: _Stanza, expand: Any, *, ctx: dict[str, Any]) -> dict[str, tuple[str, ...]]:
    if stanza.positional:
        raise MalformedDescriptor(
            f"{stanza.key}: expected key: value options only", line=stanza.lineno, **ctx
        )
    if not stanza.options:
        raise MalformedDescriptor(f"{stanza.key}: nothing to remove", line=stanza.lineno, **ctx)
    result: dict[str, tuple[str, ...]] = {}
    for opt, raw in stanza.options.items():
        items = raw if isinstance(raw, list) else [raw]
        if not items or not all(isinstance(i, str) for i in items):
            raise MalformedDescriptor(
                f"{stanza.key}: {opt} expects a string or a list of strings",
                line=stanza.lineno,
                **ctx,
            )
        result[opt] = tuple(expand(i, stanza) for i in items)
    return result


# ── Serializer ──────────────────────────────────────────────────


def quote(value: str) -> str:
    """Render a string literal the loader reads back to ``value``."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("#{", "\\#{")
    )
    return f'"{escaped}"'


def _render_list(items: tuple[str, ...]) -> str:
    if len(items) == 1:
        return quote(items[0])
    return "[" + ", ".join(quote(i) for i in items) + "]"


def render_stanza(key: str, value: Any) -> str:
    """Canonical single-line form of one stanza (without indentation)."""
    if key == "sha256":
        return f"sha256 {':no_check' if value.no_check else quote(value.sha256)}"
    if key in STRING_STANZAS:
        return f"{key} {quote(value)}"
    if key == "pkg":
        line = f"pkg {quote(value.path)}"
        if value.allow_untrusted:
            line += ", allow_untrusted: true"
        return line
    if key in ("uninstall", "zap"):
        parts = [
            f"{opt}: {_render_list(getattr(value, opt))}"
            for opt in sorted(STANZA_OPTIONS[key], key=_option_order(key))
            if getattr(value, opt)
        ]
        return f"{key} " + ", ".join(parts)
    raise ValueError(f"unknown stanza {key!r}")


def _option_order(key: str) -> Any:
    order = {"uninstall": ("pkgutil", "delete", "rmdir"), "zap": ("trash", "delete", "rmdir")}[key]
    return order.index


def _canonical_lines(descriptor: PackageDescriptor, key: str, indent: str = "  ") -> list[str]:
    if key == "name":
        return [indent + render_stanza("name", n) for n in descriptor.display_names]
    value = descriptor.field_value(key)
    if value is None:
        return []
    return [indent + render_stanza(key, value)]


def render_canonical(descriptor: PackageDescriptor) -> str:
    """Serialize in canonical formatting, ignoring any captured layout."""
    lines = [f"cask {quote(descriptor.identifier)} do"]
    for group in CANONICAL_GROUPS:
        block: list[str] = []
        for key in group:
            block.extend(_canonical_lines(descriptor, key))
        if block:
            if len(lines) > 1:
                lines.append("")
            lines.extend(block)
    lines.append("end")
    return "\n".join(lines) + "\n"


def dump_descriptor(descriptor: PackageDescriptor) -> str:
    """Serialize a descriptor back to text.

    Descriptors that came from the loader reproduce their source exactly.
    A line is only re-rendered when the field it populated no longer
    holds the value it was parsed to; fields with no source line are
    added before ``end``.
    """
    if not descriptor.layout:
        return render_canonical(descriptor)

    present = {entry.key for entry in descriptor.layout if entry.kind == "directive"}
    name_lines = [e for e in descriptor.layout if e.kind == "directive" and e.key == "name"]
    out: list[str] = []

    for entry in descriptor.layout:
        if entry.kind == "raw":
            if entry.key == "cask" and entry.value != descriptor.identifier:
                out.append(f"cask {quote(descriptor.identifier)} do")
                continue
            if entry.key == "end":
                for key in STANZA_OPTIONS:
                    if key not in present:
                        out.extend(_canonical_lines(descriptor, key))
            out.append(entry.text)
            continue

        indent = entry.text[: len(entry.text) - len(entry.text.lstrip())]
        current = descriptor.field_value(entry.key or "", entry.index)
        if current is None:
            continue
        if current == entry.value:
            out.append(entry.text)
        else:
            out.append(indent + render_stanza(entry.key or "", current))

        if entry.key == "name" and entry is name_lines[-1]:
            for extra in descriptor.display_names[len(name_lines):]:
                out.append(indent + render_stanza("name", extra))

    text = "\n".join(out)
    return text + "\n" if descriptor.trailing_newline else text
