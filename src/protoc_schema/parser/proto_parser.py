from __future__ import annotations

from pathlib import Path

from protoc_schema.models import FileDescriptor

from .proto_ast_parser import ProtoParser
from .proto_tokenizer import ProtoParseError, tokenize_proto


def parse_proto(file_path: str, text: str) -> FileDescriptor:
    """Parse proto source text into an unresolved FileDescriptor."""
    tokens = tokenize_proto(text, file_path)
    return ProtoParser(tokens, file_path).parse()


def read_proto_text(file_path: str) -> str:
    try:
        return Path(file_path).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ProtoParseError(f"Invalid UTF-8: {e.reason}", file_path) from e


def parse_proto_file(file_path: str) -> FileDescriptor:
    """Read and parse a .proto file."""
    return parse_proto(file_path, read_proto_text(file_path))
