"""
Lexer for the tiny C front end.

The whole source is scanned by one master regular expression built from
TOKEN_SPEC; each alternative is a named group and ``m.lastgroup`` tells the
scanner what it matched. Integer literals may be written in decimal, hex
(0x), binary (0b) or octal (leading 0). Character literals take a single
character or one of the escapes in ESCAPES.

Preprocessing is done on tokens while scanning: a ``#define NAME body`` line
records the tokens of ``body`` and every later ``NAME`` is replaced by them,
carrying the position of the use. ``#undef`` forgets a name; any other
directive (``#include``, ``#pragma``) is skipped.
"""

from __future__ import annotations
import enum
import re
from dataclasses import dataclass
from typing import Dict, List

from ...errors import CompileError


class TokenType(enum.Enum):
    INT_LITERAL = "INT_LITERAL"
    CHAR_LITERAL = "CHAR_LITERAL"
    IDENT = "IDENT"

    KW_VOID = "void"
    KW_CHAR = "char"
    KW_INT = "int"
    KW_UNSIGNED = "unsigned"
    KW_SIGNED = "signed"
    KW_CONST = "const"
    KW_IF = "if"
    KW_ELSE = "else"
    KW_WHILE = "while"
    KW_FOR = "for"
    KW_DO = "do"
    KW_RETURN = "return"
    KW_BREAK = "break"
    KW_CONTINUE = "continue"

    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    PERCENT = "%"
    AMP = "&"
    PIPE = "|"
    CARET = "^"
    TILDE = "~"
    LSHIFT = "<<"
    RSHIFT = ">>"
    BANG = "!"
    ASSIGN = "="
    PLUS_ASSIGN = "+="
    MINUS_ASSIGN = "-="
    STAR_ASSIGN = "*="
    SLASH_ASSIGN = "/="
    PERCENT_ASSIGN = "%="
    AMP_ASSIGN = "&="
    PIPE_ASSIGN = "|="
    CARET_ASSIGN = "^="
    EQ = "=="
    NEQ = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    AND = "&&"
    OR = "||"
    INC = "++"
    DEC = "--"

    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    SEMI = ";"
    COMMA = ","
    COLON = ":"
    QUESTION = "?"

    EOF = "EOF"


@dataclass
class Token:
    type: TokenType
    value: str | int
    line: int
    col: int

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, L{self.line}:{self.col})"


class LexerError(CompileError):
    pass


KEYWORDS: Dict[str, TokenType] = {
    t.value: t for t in TokenType if t.name.startswith("KW_")
}
PUNCTUATORS: Dict[str, TokenType] = {
    t.value: t for t in TokenType if not t.value[0].isalpha()
}

ESCAPES = {"n": 10, "r": 13, "t": 9, "0": 0, "\\": 92, "'": 39, '"': 34}

# Order matters: complete forms before the error catch-alls that share a prefix
TOKEN_SPEC = [
    ("NEWLINE",       r"\n"),
    ("SKIP",          r"[ \t\r\f\v]+"),
    ("LINE_COMMENT",  r"//[^\n]*"),
    ("BLOCK_COMMENT", r"/\*(?:.|\n)*?\*/"),
    ("OPEN_COMMENT",  r"/\*"),
    ("DIRECTIVE",     r"#[^\n]*"),
    ("NUMBER",        r"\d\w*"),
    ("CHAR",          r"'(?:\\[^\n]|[^'\\\n])'"),
    ("OPEN_CHAR",     r"'"),
    ("STRING",        r'"'),
    ("IDENT",         r"[A-Za-z_]\w*"),
    ("PUNCT",         "|".join(re.escape(p) for p in sorted(PUNCTUATORS, key=len, reverse=True))),
    ("MISMATCH",      r"."),
]
TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in TOKEN_SPEC))

SCAN_ERRORS = {
    "OPEN_COMMENT": "Unterminated block comment",
    "OPEN_CHAR": "Unterminated character literal",
    "STRING": "String literals are not supported",
}

INT_FORMS = [
    (re.compile(r"0[xX]([0-9A-Fa-f]+)[uUlL]*"), 16),
    (re.compile(r"0[bB]([01]+)[uUlL]*"), 2),
    (re.compile(r"(0[0-7]*)[uUlL]*"), 8),
    (re.compile(r"([1-9][0-9]*)[uUlL]*"), 10),
]

DEFINE_RE = re.compile(r"#[ \t]*define[ \t]+([A-Za-z_]\w*)(.*)")
UNDEF_RE = re.compile(r"#[ \t]*undef[ \t]+([A-Za-z_]\w*)[ \t]*$")


def parse_int(text: str, line: int, col: int) -> int:
    """Value of an integer literal in any of the INT_FORMS."""
    for pattern, base in INT_FORMS:
        m = pattern.fullmatch(text)
        if m:
            return int(m.group(1), base)
    raise LexerError(f"Malformed integer literal {text!r}", line, col)


def parse_char(text: str, line: int, col: int) -> int:
    """Value of a quoted character literal such as ``'A'`` or ``'\\n'``."""
    body = text[1:-1]
    if not body.startswith("\\"):
        return ord(body)
    if body[1] not in ESCAPES:
        raise LexerError(f"Unknown escape sequence {body!r}", line, col)
    return ESCAPES[body[1]]


class Lexer:
    """Turns tiny C source into a list of Tokens ending with EOF."""

    def __init__(self, source: str):
        self.source = source
        self.defines: Dict[str, List[Token]] = {}
        self.tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        self.defines = {}
        self.tokens = self._scan(self.source, 1, 1, directives=True)
        line = self.source.count("\n") + 1
        col = len(self.source) - (self.source.rfind("\n") + 1) + 1
        self.tokens.append(Token(TokenType.EOF, "", line, col))
        return self.tokens

    def _scan(self, text: str, line: int, first_col: int, directives: bool) -> List[Token]:
        out: List[Token] = []
        line_start, col_base = 0, first_col
        at_line_start = True

        for m in TOKEN_RE.finditer(text):
            kind, lexeme = m.lastgroup, m.group()
            col = m.start() - line_start + col_base

            if kind == "NEWLINE":
                line, line_start, col_base = line + 1, m.end(), 1
                at_line_start = True
                continue
            if kind == "BLOCK_COMMENT":
                if "\n" in lexeme:
                    line += lexeme.count("\n")
                    line_start, col_base = m.start() + lexeme.rindex("\n") + 1, 1
                continue
            if kind in ("SKIP", "LINE_COMMENT"):
                continue
            if kind == "DIRECTIVE" and directives and at_line_start:
                self._directive(lexeme, line, col)
                continue

            at_line_start = False
            tok = self._token(kind, lexeme, line, col)
            if tok.type is TokenType.IDENT and tok.value in self.defines:
                out.extend(Token(t.type, t.value, line, col) for t in self.defines[tok.value])
            else:
                out.append(tok)
        return out

    def _token(self, kind: str, lexeme: str, line: int, col: int) -> Token:
        if kind == "NUMBER":
            return Token(TokenType.INT_LITERAL, parse_int(lexeme, line, col), line, col)
        if kind == "CHAR":
            return Token(TokenType.CHAR_LITERAL, parse_char(lexeme, line, col), line, col)
        if kind == "IDENT":
            return Token(KEYWORDS.get(lexeme, TokenType.IDENT), lexeme, line, col)
        if kind == "PUNCT":
            return Token(PUNCTUATORS[lexeme], lexeme, line, col)
        if kind in SCAN_ERRORS:
            raise LexerError(SCAN_ERRORS[kind], line, col)
        raise LexerError(f"Unexpected character: {lexeme[0]!r}", line, col)

    def _directive(self, lexeme: str, line: int, col: int):
        m = DEFINE_RE.match(lexeme)
        if m:
            name, body = m.group(1), m.group(2)
            if body.startswith("("):
                raise LexerError(f"Function-like macro {name!r} is not supported", line, col)
            tokens = self._scan(body, line, col + m.start(2), directives=False)
            self.defines[name] = tokens or [Token(TokenType.INT_LITERAL, 1, line, col)]
            return
        m = UNDEF_RE.match(lexeme)
        if m:
            self.defines.pop(m.group(1), None)
            return
        if re.match(r"#[ \t]*(define|undef)\b", lexeme):
            raise LexerError(f"Malformed directive {lexeme.strip()!r}", line, col)
