"""Module rules loader.

Reads a `<Name>.Build.cs` source (or a `*.module.yaml` manifest) into a
`ModuleDescriptor`. Only the declarative subset is interpreted:

    Prop.Add("value");
    Prop.AddRange(new string[] { "a", "b", });
    PCHUsage = ModuleRules.PCHUsageMode.UseExplicitOrSharedPCHs;
    bSetting = true;  Name = "literal";  Name = Some.Symbol;

Control flow and computed expressions cannot be evaluated statically. They
are skipped (counted in `descriptor_statements_skipped_total{reason}`), or
rejected when `strict=True`.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from modrules import metrics
from modrules.errors import map_exception
from modrules.events import DescriptorLoaded, DescriptorLoadFailed, emit

from .exceptions import DescriptorNotFound, MalformedDescriptor
from .model import (
    BOOL_LITERALS,
    CONTROL_KEYWORDS,
    PCH_PROPERTY,
    ModuleDescriptor,
    PCHUsageMode,
)

log = logging.getLogger(__name__)

BUILD_CS_SUFFIX = ".build.cs"
YAML_SUFFIXES = (".yaml", ".yml")
MODULE_BASE = "ModuleRules"

# Token kinds
IDENT = "ident"
STRING = "string"
NUMBER = "number"
PUNCT = "punct"
EOF = "eof"

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>[ \t\r\f\v]+)
  | (?P<nl>\n)
  | (?P<line_comment>//[^\n]*)
  | (?P<block_comment>/\*.*?\*/)
  | (?P<verbatim>@"(?:[^"]|"")*")
  | (?P<string>"(?:[^"\\\n]|\\.)*")
  | (?P<char>'(?:[^'\\\n]|\\.)')
  | (?P<number>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?[fFdDmMlLuU]*)
  | (?P<ident>@?[A-Za-z_][A-Za-z0-9_]*)
  | (?P<punct>[{}()\[\];,=:.<>!&|+\-*/?%^~$])
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "0": "\0",
    "\\": "\\",
    '"': '"',
    "'": "'",
}
# \x takes one to four hex digits, \u exactly four, \U exactly eight
_HEX_ESCAPES = {
    "x": re.compile(r"[0-9A-Fa-f]{1,4}"),
    "u": re.compile(r"[0-9A-Fa-f]{4}"),
    "U": re.compile(r"[0-9A-Fa-f]{8}"),
}

_CONTINUATIONS = {
    "if": ("else",),
    "try": ("catch", "finally"),
    "catch": ("catch", "finally"),
}
_MODIFIERS = {
    "public",
    "private",
    "protected",
    "internal",
    "static",
    "sealed",
    "partial",
    "abstract",
    "override",
    "virtual",
    "readonly",
    "unsafe",
    "new",
}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    line: int


def _decode_string(raw: str, line: int) -> str:
    if raw.startswith("@"):
        return raw[2:-1].replace('""', '"')
    body = raw[1:-1]
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        esc = body[i + 1]
        if esc in _HEX_ESCAPES:
            m = _HEX_ESCAPES[esc].match(body, i + 2)
            code = int(m.group(), 16) if m else -1
            if m is None or code > 0x10FFFF:
                raise MalformedDescriptor(f"bad \\{esc} escape", line=line)
            out.append(chr(code))
            i = m.end()
            continue
        if esc not in _ESCAPES:
            raise MalformedDescriptor(f"unknown escape \\{esc}", line=line)
        out.append(_ESCAPES[esc])
        i += 2
    return "".join(out)


def tokenize(text: str) -> List[Token]:
    """Split C# source into tokens; comments and directives are dropped."""
    tokens: List[Token] = []
    pos = 0
    line = 1
    line_start = True
    n = len(text)
    while pos < n:
        ch = text[pos]
        if ch == "#" and line_start:
            end = text.find("\n", pos)
            pos = n if end == -1 else end
            continue
        if text.startswith("/*", pos) and text.find("*/", pos + 2) == -1:
            raise MalformedDescriptor("unterminated comment", line=line)
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            if ch == '"' or text.startswith('@"', pos):
                raise MalformedDescriptor("unterminated string", line=line)
            raise MalformedDescriptor(
                f"unexpected character {ch!r}", line=line
            )
        kind = m.lastgroup
        value = m.group()
        if kind == "nl":
            line += 1
            line_start = True
        elif kind == "ws":
            pass
        elif kind in ("line_comment", "block_comment"):
            line += value.count("\n")
        else:
            line_start = False
            if kind in ("verbatim", "string"):
                tokens.append(Token(STRING, value, line))
                line += value.count("\n")
            elif kind == "char":
                tokens.append(Token(STRING, value, line))
            elif kind == "ident":
                tokens.append(Token(IDENT, value.lstrip("@"), line))
            elif kind == "number":
                tokens.append(Token(NUMBER, value, line))
            else:
                tokens.append(Token(PUNCT, value, line))
        pos = m.end()
    tokens.append(Token(EOF, "", line))
    return tokens


def _parse_number(raw: str) -> int | float:
    digits = raw.rstrip("fFdDmMlLuU")
    suffix = raw[len(digits):].lower()
    if "." in digits or "e" in digits.lower() or any(
        s in suffix for s in "fdm"
    ):
        return float(digits)
    return int(digits)


class _ModuleClass:
    __slots__ = ("name", "line", "body_start", "body_end")

    def __init__(self, name: str, line: int, body_start: int, body_end: int):
        self.name = name
        self.line = line
        self.body_start = body_start
        self.body_end = body_end


class _Parser:
    def __init__(self, tokens: List[Token], strict: bool) -> None:
        self.toks = tokens
        self.pos = 0
        self.strict = strict
        self.skipped: Dict[str, int] = {}

    # --- token helpers ----------------------------------------------------
    def peek(self, offset: int = 0) -> Token:
        idx = min(self.pos + offset, len(self.toks) - 1)
        return self.toks[idx]

    def advance(self) -> Token:
        tok = self.toks[self.pos]
        if tok.kind != EOF:
            self.pos += 1
        return tok

    def at(self, value: str, kind: str = PUNCT) -> bool:
        tok = self.peek()
        return tok.kind == kind and tok.value == value

    def expect(self, value: str, kind: str = PUNCT) -> Token:
        tok = self.peek()
        if tok.kind != kind or tok.value != value:
            found = tok.value or "end of file"
            raise MalformedDescriptor(
                f"expected '{value}', found '{found}'", line=tok.line
            )
        return self.advance()

    def skip_balanced(self, open_: str, close: str) -> None:
        start = self.expect(open_)
        depth = 1
        while depth:
            tok = self.advance()
            if tok.kind == EOF:
                raise MalformedDescriptor(
                    f"unbalanced '{open_}'", line=start.line
                )
            if tok.kind == PUNCT:
                if tok.value == open_:
                    depth += 1
                elif tok.value == close:
                    depth -= 1

    def skip_to_semicolon(self) -> List[Token]:
        """Consume a simple statement, returning its tokens (without ';')."""
        collected: List[Token] = []
        first = self.peek()
        depth = 0
        while True:
            tok = self.peek()
            if tok.kind == EOF:
                raise MalformedDescriptor("expected ';'", line=first.line)
            if tok.kind == PUNCT:
                if tok.value in "({[":
                    depth += 1
                elif tok.value in ")]}":
                    if depth == 0:
                        raise MalformedDescriptor(
                            "expected ';'", line=tok.line
                        )
                    depth -= 1
                elif tok.value == ";" and depth == 0:
                    self.advance()
                    return collected
            collected.append(self.advance())

    # --- compilation unit -------------------------------------------------
    def parse_unit(self) -> List[_ModuleClass]:
        found: List[_ModuleClass] = []
        self._parse_items(found, closing=None)
        return found

    def _parse_items(
        self, found: List[_ModuleClass], closing: Optional[str]
    ) -> None:
        while True:
            tok = self.peek()
            if tok.kind == EOF:
                if closing is not None:
                    raise MalformedDescriptor(
                        "unbalanced '{' in namespace", line=tok.line
                    )
                return
            if closing is not None and self.at(closing):
                self.advance()
                return
            if tok.kind == IDENT and tok.value == "using":
                self.skip_to_semicolon()
            elif tok.kind == IDENT and tok.value == "namespace":
                self.advance()
                self._dotted_name()
                if self.at(";"):
                    self.advance()
                else:
                    self.expect("{")
                    self._parse_items(found, closing="}")
            elif self.at("["):
                self.skip_balanced("[", "]")
            elif self.at(";"):
                self.advance()
            else:
                self._parse_type_declaration(found)

    def _dotted_name(self) -> str:
        tok = self.peek()
        if tok.kind != IDENT:
            raise MalformedDescriptor(
                f"expected a name, found '{tok.value or 'end of file'}'",
                line=tok.line,
            )
        parts = [self.advance().value]
        while self.at(".") and self.peek(1).kind == IDENT:
            self.advance()
            parts.append(self.advance().value)
        return ".".join(parts)

    def _parse_type_declaration(self, found: List[_ModuleClass]) -> None:
        while self.peek().kind == IDENT and self.peek().value in _MODIFIERS:
            self.advance()
        tok = self.peek()
        if tok.kind == IDENT and tok.value == "class":
            self.advance()
            name_tok = self.peek()
            name = self._dotted_name()
            bases: List[str] = []
            if self.at(":"):
                self.advance()
                while not self.at("{"):
                    if self.peek().kind == EOF:
                        raise MalformedDescriptor(
                            f"class {name} has no body", line=name_tok.line
                        )
                    if self.peek().kind == IDENT:
                        bases.append(self._dotted_name())
                    else:
                        self.advance()
            if not self.at("{"):
                raise MalformedDescriptor(
                    f"class {name} has no body", line=name_tok.line
                )
            body_start = self.pos
            self.skip_balanced("{", "}")
            if any(b.split(".")[-1] == MODULE_BASE for b in bases):
                found.append(
                    _ModuleClass(name, name_tok.line, body_start, self.pos)
                )
            return
        # enum / struct / interface / delegate: skip the declaration
        while not self.at("{") and not self.at(";"):
            if self.peek().kind == EOF:
                raise MalformedDescriptor(
                    f"unexpected '{tok.value}'", line=tok.line
                )
            if self.at("}"):
                raise MalformedDescriptor("unbalanced '}'", line=self.peek().line)
            self.advance()
        if self.at(";"):
            self.advance()
        else:
            self.skip_balanced("{", "}")

    # --- module class -----------------------------------------------------
    def find_constructor(self, cls: _ModuleClass) -> Tuple[int, int]:
        """Locate the constructor body; returns token span inside braces."""
        self.pos = cls.body_start
        self.expect("{")
        while not self.at("}"):
            if self.peek().kind == EOF:
                raise MalformedDescriptor(
                    f"unbalanced '{{' in class {cls.name}", line=cls.line
                )
            while self.at("["):
                self.skip_balanced("[", "]")
            static = False
            while self.peek().kind == IDENT and self.peek().value in _MODIFIERS:
                static = static or self.peek().value == "static"
                self.advance()
            tok = self.peek()
            if (
                tok.kind == IDENT
                and self.peek(1).kind == PUNCT
                and self.peek(1).value == "("
                and not static
            ):
                if tok.value != cls.name:
                    raise MalformedDescriptor(
                        f"constructor '{tok.value}' does not match class "
                        f"'{cls.name}'",
                        line=tok.line,
                    )
                self.advance()
                self.skip_balanced("(", ")")
                if self.at(":"):
                    self.advance()
                    self.advance()  # base / this
                    self.skip_balanced("(", ")")
                if not self.at("{"):
                    raise MalformedDescriptor(
                        f"constructor of {cls.name} has no body",
                        line=tok.line,
                    )
                start = self.pos + 1
                self.skip_balanced("{", "}")
                return start, self.pos - 1
            self._skip_member()
        raise MalformedDescriptor(
            f"module class {cls.name} declares no constructor", line=cls.line
        )

    def _skip_member(self) -> None:
        while True:
            tok = self.peek()
            if tok.kind == EOF:
                raise MalformedDescriptor("unterminated member", line=tok.line)
            if self.at("}"):
                return
            if self.at(";"):
                self.advance()
                return
            if self.at("{"):
                self.skip_balanced("{", "}")
                if self.at("="):
                    continue
                if self.at(";"):
                    self.advance()
                return
            if self.at("("):
                self.skip_balanced("(", ")")
                continue
            self.advance()

    # --- constructor body -------------------------------------------------
    def parse_body(self, start: int, end: int) -> "_BodyState":
        state = _BodyState()
        self.pos = start
        while self.pos < end:
            first = self.peek()
            if self.at(";"):
                self.advance()
                continue
            if self.at("{"):
                self.skip_balanced("{", "}")
                self._skip("block", first)
                continue
            if first.kind == IDENT and first.value in CONTROL_KEYWORDS:
                self._skip_control()
                self._skip("control-flow", first)
                continue
            stmt = self.skip_to_semicolon()
            if not _apply_statement(stmt, state):
                self._skip("unsupported-statement", first, stmt)
        return state

    def _skip_control(self) -> None:
        keyword = self.advance().value
        if self.at("("):
            self.skip_balanced("(", ")")
        self._skip_embedded_statement()
        # if/else and try/catch/finally chains are one construct
        follow = _CONTINUATIONS.get(keyword, ())
        while self.peek().kind == IDENT and self.peek().value in follow:
            keyword = self.advance().value
            if self.at("("):
                self.skip_balanced("(", ")")
            self._skip_embedded_statement()
            follow = _CONTINUATIONS.get(keyword, ())

    def _skip_embedded_statement(self) -> None:
        tok = self.peek()
        if self.at("{"):
            self.skip_balanced("{", "}")
            # do { } while (...);
            if self.peek().kind == IDENT and self.peek().value == "while":
                self.skip_to_semicolon()
        elif tok.kind == IDENT and tok.value in CONTROL_KEYWORDS:
            self._skip_control()
        else:
            self.skip_to_semicolon()

    def _skip(
        self, reason: str, first: Token, stmt: Optional[List[Token]] = None
    ) -> None:
        text = " ".join(t.value for t in stmt) if stmt else first.value
        if self.strict:
            raise MalformedDescriptor(
                f"unsupported statement ({reason}): {text}", line=first.line
            )
        self.skipped[reason] = self.skipped.get(reason, 0) + 1
        log.debug("[descriptor-skip] reason=%s line=%d", reason, first.line)


class _BodyState:
    __slots__ = ("pch_usage", "properties", "settings", "symbols")

    def __init__(self) -> None:
        self.pch_usage: Optional[PCHUsageMode] = None
        self.properties: Dict[str, List[str]] = {}
        self.settings: Dict[str, object] = {}
        self.symbols: Dict[str, str] = {}


def _strip_this(stmt: List[Token]) -> List[Token]:
    if (
        len(stmt) > 2
        and stmt[0].kind == IDENT
        and stmt[0].value == "this"
        and stmt[1].value == "."
    ):
        return stmt[2:]
    return stmt


def _is(tok: Token, value: str, kind: str = PUNCT) -> bool:
    return tok.kind == kind and tok.value == value


def _string_items(tokens: List[Token]) -> Optional[List[str]]:
    """`"a", "b",` → ["a", "b"]; None if anything is not a literal."""
    items: List[str] = []
    expect_item = True
    for tok in tokens:
        if expect_item:
            if tok.kind != STRING or tok.value.startswith("'"):
                return None
            items.append(_decode_string(tok.value, tok.line))
            expect_item = False
        else:
            if not _is(tok, ","):
                return None
            expect_item = True
    return items


def _array_items(args: List[Token]) -> Optional[List[str]]:
    """Decode `new string[] { ... }` / `new[] { ... }` / `new List<string> { ... }`."""
    if not args or not _is(args[0], "new", IDENT):
        return None
    try:
        open_idx = next(i for i, t in enumerate(args) if _is(t, "{"))
    except StopIteration:
        return None
    if not _is(args[-1], "}"):
        return None
    head = [t.value for t in args[1:open_idx]]
    if head not in (
        ["string", "[", "]"],
        ["[", "]"],
        ["List", "<", "string", ">"],
        ["List", "<", "string", ">", "(", ")"],
    ):
        return None
    return _string_items(args[open_idx + 1:-1])


def _apply_statement(stmt: List[Token], state: _BodyState) -> bool:
    stmt = _strip_this(stmt)
    if len(stmt) < 3 or stmt[0].kind != IDENT:
        return False
    prop = stmt[0].value

    # Prop.Add(...) / Prop.AddRange(...)
    if (
        _is(stmt[1], ".")
        and stmt[2].kind == IDENT
        and len(stmt) >= 5
        and _is(stmt[3], "(")
        and _is(stmt[-1], ")")
    ):
        method = stmt[2].value
        args = stmt[4:-1]
        if method == "Add":
            items = _string_items(args)
            if items is None or len(items) != 1:
                return False
        elif method == "AddRange":
            items = _array_items(args)
            if items is None:
                return False
        else:
            return False
        state.properties.setdefault(prop, []).extend(items)
        return True

    # Prop = value
    if not _is(stmt[1], "="):
        return False
    value = stmt[2:]
    if prop == PCH_PROPERTY:
        if not all(t.kind == IDENT or _is(t, ".") for t in value):
            return False
        parts = [t.value for t in value if t.kind == IDENT]
        if len(parts) > 1 and parts[-2] != "PCHUsageMode":
            return False
        try:
            state.pch_usage = PCHUsageMode(parts[-1])
        except ValueError:
            raise MalformedDescriptor(
                f"unknown PCHUsage mode '{parts[-1]}'", line=stmt[0].line
            ) from None
        return True
    literal = _literal(value)
    if literal is not None:
        state.symbols.pop(prop, None)
        state.settings[prop] = literal[0]
        return True
    if (
        value[0].kind == IDENT
        and len(value) % 2 == 1
        and all(
            (t.kind == IDENT) if i % 2 == 0 else _is(t, ".")
            for i, t in enumerate(value)
        )
    ):
        state.settings.pop(prop, None)
        state.symbols[prop] = "".join(t.value for t in value)
        return True
    return False


def _literal(value: List[Token]) -> Optional[Tuple[object]]:
    """Decode a single literal; wrapped in a tuple so falsy values survive."""
    if len(value) == 2 and _is(value[0], "-") and value[1].kind == NUMBER:
        return (-_parse_number(value[1].value),)
    if len(value) != 1:
        return None
    tok = value[0]
    if tok.kind == STRING and not tok.value.startswith("'"):
        return (_decode_string(tok.value, tok.line),)
    if tok.kind == NUMBER:
        return (_parse_number(tok.value),)
    if tok.kind == IDENT and tok.value in BOOL_LITERALS:
        return (BOOL_LITERALS[tok.value],)
    return None


def load(source: str, strict: bool = False) -> ModuleDescriptor:
    """Parse module rules text into a descriptor.

    Raises MalformedDescriptor when the source does not declare exactly one
    class deriving from ModuleRules with a matching constructor.
    """
    parser = _Parser(tokenize(source), strict=strict)
    classes = parser.parse_unit()
    if not classes:
        raise MalformedDescriptor(
            "no module declaration (class deriving from ModuleRules)"
        )
    if len(classes) > 1:
        names = ", ".join(c.name for c in classes)
        raise MalformedDescriptor(
            f"multiple module declarations: {names}", line=classes[1].line
        )
    cls = classes[0]
    if "." in cls.name:
        raise MalformedDescriptor(
            f"invalid module name '{cls.name}'", line=cls.line
        )
    start, end = parser.find_constructor(cls)
    state = parser.parse_body(start, end)
    for reason, count in parser.skipped.items():
        metrics.inc(
            "descriptor_statements_skipped_total", {"reason": reason}, count
        )
    try:
        return ModuleDescriptor(
            name=cls.name,
            pch_usage=state.pch_usage,
            properties=state.properties,
            settings=state.settings,
            symbols=state.symbols,
        )
    except ValidationError as e:
        raise MalformedDescriptor(str(e), line=cls.line) from e


def load_yaml(text: str) -> ModuleDescriptor:
    """Parse a YAML manifest shaped like `ModuleDescriptor.to_dict()`."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line = mark.line + 1 if mark is not None else None
        raise MalformedDescriptor(f"invalid YAML: {e}", line=line) from e
    if not isinstance(data, dict):
        raise MalformedDescriptor("manifest must be a mapping")
    if not data.get("name"):
        raise MalformedDescriptor("no module declaration (missing 'name')")
    try:
        return ModuleDescriptor.model_validate(data)
    except ValidationError as e:
        raise MalformedDescriptor(str(e)) from e


def descriptor_format(path: Path) -> str:
    lowered = path.name.lower()
    if lowered.endswith(BUILD_CS_SUFFIX) or lowered.endswith(".cs"):
        return "buildcs"
    if lowered.endswith(YAML_SUFFIXES):
        return "yaml"
    raise MalformedDescriptor("unsupported descriptor format", path=str(path))


def expected_module_name(path: Path) -> str:
    name = path.name
    for suffix in (".Build.cs", ".module.yaml", ".module.yml", ".cs", ".yaml", ".yml"):
        if name.lower().endswith(suffix.lower()):
            return name[: -len(suffix)]
    return path.stem


def load_file(path: str | Path, strict: bool = False) -> ModuleDescriptor:
    """Load one descriptor file; emits load events and metrics."""
    p = Path(path)
    t0 = time.perf_counter()
    try:
        if not p.is_file():
            raise DescriptorNotFound(f"Descriptor file not found: {p}")
        fmt = descriptor_format(p)
        try:
            text = p.read_bytes().decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedDescriptor(
                f"not valid UTF-8 ({e.reason})", path=str(p)
            ) from e
        try:
            if fmt == "buildcs":
                desc = load(text, strict=strict)
            else:
                desc = load_yaml(text)
        except MalformedDescriptor as e:
            raise e.with_path(str(p)) from e
    except Exception as e:
        error_type = map_exception(e)
        metrics.inc("descriptor_load_failed_total", {"error_type": error_type})
        emit(
            DescriptorLoadFailed(
                path=str(p), error_type=error_type, message=str(e)
            )
        )
        raise
    load_ms = (time.perf_counter() - t0) * 1000.0
    expected = expected_module_name(p)
    if expected != desc.name:
        metrics.inc("descriptor_name_mismatch_total")
        log.warning(
            "[descriptor-name-mismatch] path=%s declared=%s expected=%s",
            p,
            desc.name,
            expected,
        )
    metrics.inc("descriptors_loaded_total", {"format": fmt})
    emit(
        DescriptorLoaded(
            module=desc.name, path=str(p), format=fmt, load_ms=load_ms
        )
    )
    return desc


__all__ = [
    "Token",
    "tokenize",
    "load",
    "load_yaml",
    "load_file",
    "descriptor_format",
    "expected_module_name",
]
