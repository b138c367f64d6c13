"""
Python stripper - shrinks module sources before they are packed.

Each switch removes one kind of noise:

- ``strip_doc``      module, class and function docstrings
- ``strip_log``      ``logger.debug(...)`` style trace statements
- ``strip_comment``  ``#`` comments
- ``strip_ws``       trailing whitespace and blank lines

With ``maintain_linum`` every removed line is left in place as an empty
line, so line numbers inside the module do not move.

A stripper instance is a transformer: calling it with ``(name, content)``
returns the stripped bytes.
"""

from __future__ import annotations

import ast
import io
import logging
import re
import tokenize
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from .faults import TransformerFailureFault

logger = logging.getLogger("datapack.stripper")

Transformer = Callable[[str, bytes], bytes]

LOG_RECEIVERS = frozenset({"log", "logger", "_log", "_logger", "logging", "LOG", "LOGGER"})
LOG_LEVELS = frozenset({"debug", "trace"})

_STRING_TOKENS = frozenset({"STRING", "FSTRING_MIDDLE", "TSTRING_MIDDLE"})
_DOC_OWNERS = (ast.Module, ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)

# Lines as tokenize sees them: split on "\n" only.
_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")


@dataclass(frozen=True)
class _Span:
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    replacement: str


def _split(text: str) -> List[str]:
    return _LINE_RE.findall(text)


def _char_col(line: str, byte_col: int) -> int:
    """Convert an AST (UTF-8 byte) column into a ``str`` index."""
    return len(line.encode("utf-8")[:byte_col].decode("utf-8", errors="ignore"))


def _is_docstring(stmt: ast.stmt) -> bool:
    return (
        isinstance(stmt, ast.Expr)
        and isinstance(stmt.value, ast.Constant)
        and isinstance(stmt.value.value, str)
    )


def _is_log_call(stmt: ast.stmt) -> bool:
    if not isinstance(stmt, ast.Expr) or not isinstance(stmt.value, ast.Call):
        return False
    func = stmt.value.func
    return (
        isinstance(func, ast.Attribute)
        and func.attr in LOG_LEVELS
        and isinstance(func.value, ast.Name)
        and func.value.id in LOG_RECEIVERS
    )


class PythonStripper:
    """
    Configurable source stripper.

    Args:
        maintain_linum: Keep the line count of every module unchanged.
        strip_ws: Remove trailing whitespace and blank lines.
        strip_comment: Remove comments.
        strip_doc: Remove docstrings.
        strip_log: Remove ``debug``/``trace`` logging calls.
    """

    def __init__(
        self,
        *,
        maintain_linum: bool = False,
        strip_ws: bool = True,
        strip_comment: bool = True,
        strip_doc: bool = True,
        strip_log: bool = False,
    ):
        self.maintain_linum = maintain_linum
        self.strip_ws = strip_ws
        self.strip_comment = strip_comment
        self.strip_doc = strip_doc
        self.strip_log = strip_log

    def __repr__(self) -> str:
        flags = ", ".join(f"{k}={v}" for k, v in self.options().items())
        return f"PythonStripper({flags})"

    def options(self) -> Dict[str, bool]:
        return {
            "maintain_linum": self.maintain_linum,
            "strip_ws": self.strip_ws,
            "strip_comment": self.strip_comment,
            "strip_doc": self.strip_doc,
            "strip_log": self.strip_log,
        }

    def __call__(self, name: str, content: bytes) -> bytes:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise TransformerFailureFault(name, f"not UTF-8 ({exc.reason})") from exc
        try:
            stripped = self.strip(text, filename=name)
        except (SyntaxError, tokenize.TokenError, ValueError) as exc:
            raise TransformerFailureFault(name, str(exc)) from exc
        logger.debug("Stripped %s: %d -> %d bytes", name, len(text), len(stripped))
        return stripped.encode("utf-8")

    # ── Passes ───────────────────────────────────────────────────────

    def strip(self, text: str, filename: str = "<string>") -> str:
        """Strip *text* and return the result, which still parses."""
        if not text:
            return text
        if self.strip_doc or self.strip_log:
            text = self._strip_statements(text, filename)
        if self.strip_comment:
            text = self._strip_comments(text)
        if self.strip_ws:
            text = self._strip_whitespace(text)
        ast.parse(text, filename)
        return text

    def _removable(self, body: List[ast.stmt], doc_owner: bool) -> Set[int]:
        picked: Set[int] = set()
        for index, stmt in enumerate(body):
            if self.strip_doc and doc_owner and index == 0 and _is_docstring(stmt):
                picked.add(index)
            elif self.strip_log and _is_log_call(stmt):
                picked.add(index)
        return picked

    def _collect_spans(self, tree: ast.Module) -> List[_Span]:
        spans: List[_Span] = []
        for node in ast.walk(tree):
            for field in ("body", "orelse", "finalbody"):
                body = getattr(node, field, None)
                if not isinstance(body, list) or not body or not isinstance(body[0], ast.stmt):
                    continue
                doc_owner = field == "body" and isinstance(node, _DOC_OWNERS)
                picked = self._removable(body, doc_owner)
                if not picked:
                    continue
                empties = len(picked) == len(body) and not isinstance(node, ast.Module)
                for index in sorted(picked):
                    stmt = body[index]
                    shares_line = any(
                        other.lineno == stmt.end_lineno or other.end_lineno == stmt.lineno
                        for j, other in enumerate(body)
                        if j != index and j not in picked
                    )
                    keep_pass = shares_line or (empties and index == min(picked))
                    spans.append(
                        _Span(
                            stmt.lineno,
                            stmt.col_offset,
                            stmt.end_lineno,
                            stmt.end_col_offset,
                            "pass" if keep_pass else "",
                        )
                    )
        return spans

    def _strip_statements(self, text: str, filename: str) -> str:
        tree = ast.parse(text, filename)
        spans = self._collect_spans(tree)
        if not spans:
            return text
        lines = _split(text)
        for span in sorted(spans, key=lambda s: (s.start_line, s.start_col), reverse=True):
            first = lines[span.start_line - 1]
            last = lines[span.end_line - 1]
            prefix = first[: _char_col(first, span.start_col)]
            suffix = last[_char_col(last, span.end_col):]
            if span.replacement == "" and suffix.lstrip().startswith(";"):
                suffix = suffix.lstrip()[1:]
            merged = prefix + span.replacement + suffix
            removed = span.end_line - span.start_line
            filler = ["\n"] * removed if self.maintain_linum else []
            lines[span.start_line - 1:span.end_line] = [merged] + filler
        return "".join(lines)

    def _strip_comments(self, text: str) -> str:
        lines = _split(text)
        for token in tokenize.generate_tokens(io.StringIO(text).readline):
            if token.type != tokenize.COMMENT:
                continue
            row, col = token.start
            line = lines[row - 1]
            ending = line[len(line.rstrip("\r\n")):]
            lines[row - 1] = line[:col].rstrip() + ending
        return "".join(lines)

    def _protected_rows(self, text: str) -> Set[int]:
        rows: Set[int] = set()
        for token in tokenize.generate_tokens(io.StringIO(text).readline):
            if tokenize.tok_name[token.type] in _STRING_TOKENS and token.end[0] > token.start[0]:
                rows.update(range(token.start[0], token.end[0] + 1))
        return rows

    def _strip_whitespace(self, text: str) -> str:
        protected = self._protected_rows(text)
        out: List[str] = []
        for row, line in enumerate(_split(text), start=1):
            if row in protected:
                out.append(line)
                continue
            body = line.rstrip("\r\n")
            ending = line[len(body):]
            body = body.rstrip()
            if not body:
                if self.maintain_linum:
                    out.append(ending or "")
                continue
            out.append(body + ending)
        return "".join(out)


def make_stripper(options: Optional[Dict[str, bool]] = None) -> PythonStripper:
    """Build a stripper from ``stripper_*`` style options."""
    options = dict(options or {})
    return PythonStripper(
        maintain_linum=options.get("maintain_linum", False),
        strip_ws=options.get("ws", True),
        strip_comment=options.get("comment", True),
        strip_doc=options.get("doc", True),
        strip_log=options.get("log", False),
    )


def apply_transformer(
    transformer: Transformer,
    resources: Dict[str, bytes],
) -> Tuple[Dict[str, bytes], Dict[str, int]]:
    """
    Run *transformer* over every resource.

    Returns the transformed mapping and the byte saving per resource.

    Raises:
        TransformerFailureFault: If the transformer fails on a resource.
    """
    out: Dict[str, bytes] = {}
    saved: Dict[str, int] = {}
    for name, content in resources.items():
        try:
            result = transformer(name, content)
        except TransformerFailureFault:
            raise
        except Exception as exc:
            raise TransformerFailureFault(name, f"{type(exc).__name__}: {exc}") from exc
        if not isinstance(result, bytes):
            raise TransformerFailureFault(name, "transformer must return bytes")
        out[name] = result
        saved[name] = len(content) - len(result)
    return out, saved
