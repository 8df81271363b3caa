"""Tokenizer for protobuf (.proto) files."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional


class ProtoTokenType(Enum):
    # Keywords
    SYNTAX = auto()
    PACKAGE = auto()
    IMPORT = auto()
    OPTION = auto()
    MESSAGE = auto()
    ENUM = auto()
    SERVICE = auto()
    RPC = auto()
    RETURNS = auto()
    STREAM = auto()
    EXTEND = auto()
    EXTENSIONS = auto()
    RESERVED = auto()
    ONEOF = auto()
    MAP = auto()
    REPEATED = auto()
    OPTIONAL = auto()
    REQUIRED = auto()

    # Delimiters
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LANGLE = auto()
    RANGLE = auto()
    SEMICOLON = auto()
    EQUALS = auto()
    COLON = auto()
    COMMA = auto()
    DOT = auto()

    # Literals
    IDENT = auto()
    NUMBER = auto()
    STRING_LIT = auto()

    # Special
    EOF = auto()


_KEYWORDS = {
    "syntax": ProtoTokenType.SYNTAX,
    "package": ProtoTokenType.PACKAGE,
    "import": ProtoTokenType.IMPORT,
    "option": ProtoTokenType.OPTION,
    "message": ProtoTokenType.MESSAGE,
    "enum": ProtoTokenType.ENUM,
    "service": ProtoTokenType.SERVICE,
    "rpc": ProtoTokenType.RPC,
    "returns": ProtoTokenType.RETURNS,
    "stream": ProtoTokenType.STREAM,
    "extend": ProtoTokenType.EXTEND,
    "extensions": ProtoTokenType.EXTENSIONS,
    "reserved": ProtoTokenType.RESERVED,
    "oneof": ProtoTokenType.ONEOF,
    "map": ProtoTokenType.MAP,
    "repeated": ProtoTokenType.REPEATED,
    "optional": ProtoTokenType.OPTIONAL,
    "required": ProtoTokenType.REQUIRED,
}

# Keywords are only reserved in the positions where they start a construct;
# everywhere else they are valid names.
KEYWORD_TYPES = frozenset(_KEYWORDS.values())

_SINGLE_CHAR_TOKENS = {
    "{": ProtoTokenType.LBRACE,
    "}": ProtoTokenType.RBRACE,
    "(": ProtoTokenType.LPAREN,
    ")": ProtoTokenType.RPAREN,
    "[": ProtoTokenType.LBRACKET,
    "]": ProtoTokenType.RBRACKET,
    "<": ProtoTokenType.LANGLE,
    ">": ProtoTokenType.RANGLE,
    ";": ProtoTokenType.SEMICOLON,
    "=": ProtoTokenType.EQUALS,
    ":": ProtoTokenType.COLON,
    ",": ProtoTokenType.COMMA,
    ".": ProtoTokenType.DOT,
}

_FLOAT_WORDS = frozenset({"inf", "infinity", "nan"})

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "\\": "\\",
    "'": "'",
    '"': '"',
}


class ProtoParseError(Exception):
    """Raised when a .proto source cannot be tokenized or parsed."""

    def __init__(
        self,
        message: str,
        file_path: str = "<input>",
        line: Optional[int] = None,
        col: Optional[int] = None,
    ):
        self.message = message
        self.file_path = file_path
        self.line = line
        self.col = col
        if line is not None:
            super().__init__(f"{file_path}:{line}:{col}: {message}")
        else:
            super().__init__(f"{file_path}: {message}")


@dataclass
class ProtoToken:
    type: ProtoTokenType
    value: str
    line: int
    col: int

    @property
    def is_name(self) -> bool:
        """True for identifiers and keywords used as identifiers."""
        return self.type == ProtoTokenType.IDENT or self.type in KEYWORD_TYPES


def tokenize_proto(text: str, file_path: str = "<input>") -> List[ProtoToken]:
    """Tokenize a protobuf source string into a list of tokens."""
    tokens: List[ProtoToken] = []
    i = 0
    line = 1
    col = 1
    n = len(text)

    while i < n:
        ch = text[i]

        # Whitespace
        if ch in (" ", "\t", "\r", "\f", "\v"):
            i += 1
            col += 1
            continue

        if ch == "\n":
            i += 1
            line += 1
            col = 1
            continue

        # Single-line comment
        if ch == "/" and i + 1 < n and text[i + 1] == "/":
            while i < n and text[i] != "\n":
                i += 1
            continue

        # Multi-line comment
        if ch == "/" and i + 1 < n and text[i + 1] == "*":
            start_line, start_col = line, col
            i += 2
            col += 2
            while True:
                if i >= n:
                    raise ProtoParseError("Unterminated comment", file_path, start_line, start_col)
                if text[i] == "\n":
                    line += 1
                    col = 1
                elif text[i] == "*" and i + 1 < n and text[i + 1] == "/":
                    i += 2
                    col += 2
                    break
                else:
                    col += 1
                i += 1
            continue

        # Signed float constants: -inf, +nan
        if ch in "-+":
            j = i + 1
            while j < n and (text[j].isalnum() or text[j] == "_"):
                j += 1
            if text[i + 1:j] in _FLOAT_WORDS:
                tokens.append(ProtoToken(ProtoTokenType.NUMBER, text[i:j], line, col))
                col += j - i
                i = j
                continue

        # Number, possibly signed or fractional
        if ch.isdigit() or (
            ch in "-+" and i + 1 < n and (text[i + 1].isdigit() or text[i + 1] == ".")
        ) or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            start = i
            start_col = col
            i += 1
            while i < n and (text[i].isalnum() or text[i] == "." or (
                text[i] in "+-" and text[i - 1] in "eE" and not text[start:i].lower().startswith(("0x", "-0x", "+0x"))
            )):
                i += 1
            col += i - start
            tokens.append(ProtoToken(ProtoTokenType.NUMBER, text[start:i], line, start_col))
            continue

        if ch in _SINGLE_CHAR_TOKENS:
            tokens.append(ProtoToken(_SINGLE_CHAR_TOKENS[ch], ch, line, col))
            i += 1
            col += 1
            continue

        # String literal, either quote style
        if ch in ('"', "'"):
            quote = ch
            start_line, start_col = line, col
            i += 1
            col += 1
            chars: List[str] = []
            while True:
                if i >= n or text[i] == "\n":
                    raise ProtoParseError("Unterminated string literal", file_path, start_line, start_col)
                c = text[i]
                if c == quote:
                    i += 1
                    col += 1
                    break
                if c == "\\" and i + 1 < n:
                    chars.append(_ESCAPES.get(text[i + 1], text[i + 1]))
                    i += 2
                    col += 2
                    continue
                chars.append(c)
                i += 1
                col += 1
            tokens.append(ProtoToken(ProtoTokenType.STRING_LIT, "".join(chars), start_line, start_col))
            continue

        # Identifier / keyword
        if ch.isalpha() or ch == "_":
            start = i
            start_col = col
            while i < n and (text[i].isalnum() or text[i] == "_"):
                i += 1
                col += 1
            word = text[start:i]
            tok_type = _KEYWORDS.get(word, ProtoTokenType.IDENT)
            tokens.append(ProtoToken(tok_type, word, line, start_col))
            continue

        raise ProtoParseError(f"Unexpected character {ch!r}", file_path, line, col)

    tokens.append(ProtoToken(ProtoTokenType.EOF, "", line, col))
    return tokens
