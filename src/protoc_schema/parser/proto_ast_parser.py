"""Recursive descent parser for protobuf (.proto) files.

Consumes a token stream from proto_tokenizer and produces an unresolved
descriptor tree: every field and method keeps its type as written
(``raw_type``) until the type resolver binds it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple

from protoc_schema.models import (
    Cardinality,
    EnumDescriptor,
    EnumValue,
    ExtendDescriptor,
    FieldDescriptor,
    FileDescriptor,
    MessageDescriptor,
    MethodDescriptor,
    ServiceDescriptor,
)

from .proto_tokenizer import ProtoParseError, ProtoToken, ProtoTokenType

_LABELS = {
    ProtoTokenType.REQUIRED: Cardinality.REQUIRED,
    ProtoTokenType.OPTIONAL: Cardinality.OPTIONAL,
    ProtoTokenType.REPEATED: Cardinality.REPEATED,
}


def _parse_int(text: str) -> int:
    """Parse a proto integer literal: decimal, 0x hex or leading-zero octal."""
    sign = -1 if text.startswith("-") else 1
    digits = text.lstrip("+-")
    if digits[:2].lower() == "0x":
        return sign * int(digits[2:], 16)
    if len(digits) > 1 and digits.startswith("0"):
        return sign * int(digits[1:], 8)
    return sign * int(digits)


class DuplicateDefinitionError(ProtoParseError):
    """Raised when two sibling declarations share a name (or a number) in one scope."""


class ProtoParser:
    """Recursive descent parser for .proto files."""

    def __init__(self, tokens: List[ProtoToken], file_path: str = "<input>"):
        self._tokens = tokens
        self._pos = 0
        self._file_path = file_path

    # -- public API --

    def parse(self) -> FileDescriptor:
        """Parse the full token stream into a FileDescriptor."""
        proto = FileDescriptor(file_path=self._file_path)
        seen_package = False
        type_names: Set[str] = set()

        while not self._at_end():
            tok = self._peek()
            tt = tok.type

            if tt == ProtoTokenType.SYNTAX:
                self._advance()
                self._expect(ProtoTokenType.EQUALS)
                proto.syntax = self._expect(ProtoTokenType.STRING_LIT).value
                self._expect(ProtoTokenType.SEMICOLON)
            elif tt == ProtoTokenType.PACKAGE:
                if seen_package:
                    raise self._error("Duplicate package declaration", tok)
                seen_package = True
                self._advance()
                proto.package = self._parse_full_ident()
                self._expect(ProtoTokenType.SEMICOLON)
            elif tt == ProtoTokenType.IMPORT:
                self._advance()
                if self._peek().type == ProtoTokenType.IDENT and self._peek().value in ("public", "weak"):
                    self._advance()
                proto.import_names.append(self._expect(ProtoTokenType.STRING_LIT).value)
                self._expect(ProtoTokenType.SEMICOLON)
            elif tt == ProtoTokenType.OPTION:
                name, value = self._parse_option_statement()
                proto.options[name] = value
            elif tt == ProtoTokenType.MESSAGE:
                message = self._parse_message()
                self._claim(type_names, message.name, tok, "type")
                proto.messages.append(message)
            elif tt == ProtoTokenType.ENUM:
                enum = self._parse_enum()
                self._claim(type_names, enum.name, tok, "type")
                proto.enums.append(enum)
            elif tt == ProtoTokenType.SERVICE:
                service = self._parse_service()
                self._claim(type_names, service.name, tok, "type")
                proto.services.append(service)
            elif tt == ProtoTokenType.EXTEND:
                proto.extends.append(self._parse_extend())
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                raise self._error(f"Unexpected {tt.name} ({tok.value!r}) at file scope", tok)

        # The package statement may follow an extend block.
        for extend in proto.extends:
            extend.package = proto.package
        return proto

    # -- message parsing --

    def _parse_message(self) -> MessageDescriptor:
        """Parse: MESSAGE name LBRACE body RBRACE"""
        start = self._expect(ProtoTokenType.MESSAGE)
        message = MessageDescriptor(name=self._expect_name().value)
        self._expect(ProtoTokenType.LBRACE)
        self._parse_message_body(message)
        self._expect(ProtoTokenType.RBRACE)
        self._check_fields(message, start)
        return message

    def _parse_message_body(self, message: MessageDescriptor) -> None:
        """Parse the contents between { and } of a message."""
        type_names: Set[str] = set()

        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            tok = self._peek()
            tt = tok.type

            if tt == ProtoTokenType.MESSAGE and self._at_nested_declaration():
                nested = self._parse_message()
                self._claim(type_names, nested.name, tok, "type")
                message.messages.append(nested)
            elif tt == ProtoTokenType.ENUM and self._at_nested_declaration():
                enum = self._parse_enum()
                self._claim(type_names, enum.name, tok, "type")
                message.enums.append(enum)
            elif tt == ProtoTokenType.OPTION:
                name, value = self._parse_option_statement()
                message.options[name] = value
            elif tt == ProtoTokenType.ONEOF:
                self._parse_oneof(message)
            elif tt in (ProtoTokenType.RESERVED, ProtoTokenType.EXTENSIONS):
                self._skip_statement()
            elif tt == ProtoTokenType.EXTEND:
                raise self._error("extend blocks are only supported at file scope", tok)
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            elif tt == ProtoTokenType.MAP and self._peek(1).type == ProtoTokenType.LANGLE:
                message.fields.append(self._parse_map_field())
            elif tt in _LABELS or tok.is_name or tt == ProtoTokenType.DOT:
                message.fields.append(self._parse_field())
            else:
                raise self._error(f"Unexpected {tt.name} ({tok.value!r}) in message {message.name}", tok)

    def _at_nested_declaration(self) -> bool:
        """``message Foo {`` opens a block; ``message foo = 1;`` is a field typed ``message``."""
        return self._peek(1).is_name and self._peek(2).type == ProtoTokenType.LBRACE

    def _parse_field(self, oneof: Optional[str] = None) -> FieldDescriptor:
        """Parse: [label] type name EQUALS NUMBER [options] SEMICOLON"""
        cardinality = Cardinality.SINGULAR
        tt = self._peek().type
        if tt in _LABELS:
            if oneof is not None:
                raise self._error("Fields in a oneof must not have labels", self._peek())
            cardinality = _LABELS[tt]
            self._advance()

        raw_type = self._parse_type_name()
        name_tok = self._expect_name()
        number = self._parse_field_number(name_tok)
        options = self._parse_field_options()
        self._expect(ProtoTokenType.SEMICOLON)

        return FieldDescriptor(
            name=name_tok.value,
            raw_type=raw_type,
            number=number,
            cardinality=cardinality,
            options=options,
            oneof=oneof,
        )

    def _parse_map_field(self) -> FieldDescriptor:
        """Parse: MAP LANGLE key_type COMMA value_type RANGLE name EQUALS NUMBER [options] SEMICOLON"""
        self._expect(ProtoTokenType.MAP)
        self._expect(ProtoTokenType.LANGLE)
        key_type = self._parse_type_name()
        self._expect(ProtoTokenType.COMMA)
        value_type = self._parse_type_name()
        self._expect(ProtoTokenType.RANGLE)
        name_tok = self._expect_name()
        number = self._parse_field_number(name_tok)
        options = self._parse_field_options()
        self._expect(ProtoTokenType.SEMICOLON)

        return FieldDescriptor(
            name=name_tok.value,
            raw_type=value_type,
            number=number,
            cardinality=Cardinality.REPEATED,
            options=options,
            key_type=key_type,
        )

    def _parse_oneof(self, message: MessageDescriptor) -> None:
        """Parse: ONEOF name LBRACE fields RBRACE; fields land on the message."""
        self._expect(ProtoTokenType.ONEOF)
        name = self._expect_name().value
        message.oneofs.append(name)
        self._expect(ProtoTokenType.LBRACE)
        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            tt = self._peek().type
            if tt == ProtoTokenType.OPTION:
                self._parse_option_statement()
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                message.fields.append(self._parse_field(oneof=name))
        self._expect(ProtoTokenType.RBRACE)

    def _parse_field_number(self, name_tok: ProtoToken) -> int:
        tok = self._peek()
        if tok.type != ProtoTokenType.EQUALS:
            raise self._error(f"Missing field number for '{name_tok.value}'", tok)
        self._advance()
        num_tok = self._peek()
        if num_tok.type != ProtoTokenType.NUMBER:
            raise self._error(f"Missing field number for '{name_tok.value}'", num_tok)
        self._advance()
        try:
            number = _parse_int(num_tok.value)
        except ValueError:
            raise self._error(f"Invalid field number {num_tok.value!r}", num_tok) from None
        if number <= 0:
            raise self._error(f"Field number must be positive, got {number}", num_tok)
        return number

    def _parse_field_options(self) -> Dict[str, Any]:
        """Parse an optional bracketed list: [name = value, ...]"""
        options: Dict[str, Any] = {}
        if self._peek().type != ProtoTokenType.LBRACKET:
            return options
        self._advance()
        while True:
            name = self._parse_option_name()
            self._expect_assignment()
            options[name] = self._parse_option_value()
            if self._peek().type == ProtoTokenType.COMMA:
                self._advance()
                continue
            break
        self._expect(ProtoTokenType.RBRACKET)
        return options

    def _check_fields(self, message: MessageDescriptor, start: ProtoToken) -> None:
        names: Set[str] = set()
        numbers: Set[int] = set()
        for f in message.fields:
            if f.name in names:
                raise DuplicateDefinitionError(
                    f"Duplicate field '{f.name}' in message {message.name}",
                    self._file_path, start.line, start.col,
                )
            if f.number in numbers:
                raise DuplicateDefinitionError(
                    f"Duplicate field number {f.number} in message {message.name}",
                    self._file_path, start.line, start.col,
                )
            names.add(f.name)
            numbers.add(f.number)

    # -- enum parsing --

    def _parse_enum(self) -> EnumDescriptor:
        """Parse: ENUM name LBRACE (value | option | reserved)* RBRACE"""
        self._expect(ProtoTokenType.ENUM)
        enum = EnumDescriptor(name=self._expect_name().value)
        self._expect(ProtoTokenType.LBRACE)
        value_tokens: List[ProtoToken] = []

        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            tt = self._peek().type
            if tt == ProtoTokenType.OPTION:
                name, value = self._parse_option_statement()
                enum.options[name] = value
            elif tt == ProtoTokenType.RESERVED:
                self._skip_statement()
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                name_tok = self._expect_name()
                self._expect(ProtoTokenType.EQUALS)
                num_tok = self._expect(ProtoTokenType.NUMBER)
                try:
                    number = _parse_int(num_tok.value)
                except ValueError:
                    raise self._error(f"Invalid enum value {num_tok.value!r}", num_tok) from None
                options = self._parse_field_options()
                self._expect(ProtoTokenType.SEMICOLON)
                enum.values.append(EnumValue(name=name_tok.value, number=number, options=options))
                value_tokens.append(name_tok)

        self._expect(ProtoTokenType.RBRACE)

        # allow_alias may be declared after the values it permits.
        allow_alias = enum.options.get("allow_alias") is True
        names: Set[str] = set()
        numbers: Dict[int, str] = {}
        for value, tok in zip(enum.values, value_tokens):
            self._claim(names, value.name, tok, "enum value")
            if value.number in numbers and not allow_alias:
                raise self._error(
                    f"Enum value {value.name} reuses number {value.number} of "
                    f"{numbers[value.number]} in enum {enum.name}",
                    tok,
                )
            numbers.setdefault(value.number, value.name)
        return enum

    # -- service parsing --

    def _parse_service(self) -> ServiceDescriptor:
        """Parse: SERVICE name LBRACE (rpc | option)* RBRACE"""
        self._expect(ProtoTokenType.SERVICE)
        service = ServiceDescriptor(name=self._expect_name().value)
        self._expect(ProtoTokenType.LBRACE)
        method_names: Set[str] = set()

        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            tok = self._peek()
            if tok.type == ProtoTokenType.RPC:
                method = self._parse_rpc()
                self._claim(method_names, method.name, tok, "rpc")
                service.methods.append(method)
            elif tok.type == ProtoTokenType.OPTION:
                name, value = self._parse_option_statement()
                service.options[name] = value
            elif tok.type == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                raise self._error(f"Unexpected {tok.type.name} ({tok.value!r}) in service {service.name}", tok)

        self._expect(ProtoTokenType.RBRACE)
        return service

    def _parse_rpc(self) -> MethodDescriptor:
        """Parse: RPC name ( [stream] In ) RETURNS ( [stream] Out ) (; | { options })"""
        self._expect(ProtoTokenType.RPC)
        name = self._expect_name().value
        client_streaming, input_type = self._parse_rpc_type()
        self._expect(ProtoTokenType.RETURNS)
        server_streaming, output_type = self._parse_rpc_type()
        method = MethodDescriptor(
            name=name,
            raw_input_type=input_type,
            raw_output_type=output_type,
            client_streaming=client_streaming,
            server_streaming=server_streaming,
        )

        if self._peek().type == ProtoTokenType.LBRACE:
            self._advance()
            while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
                if self._peek().type == ProtoTokenType.SEMICOLON:
                    self._advance()
                    continue
                if self._peek().type != ProtoTokenType.OPTION:
                    raise self._error(f"Unexpected {self._peek().value!r} in rpc {name}")
                opt_name, value = self._parse_option_statement()
                method.options[opt_name] = value
            self._expect(ProtoTokenType.RBRACE)
            if self._peek().type == ProtoTokenType.SEMICOLON:
                self._advance()
        else:
            self._expect(ProtoTokenType.SEMICOLON)
        return method

    def _parse_rpc_type(self) -> Tuple[bool, str]:
        self._expect(ProtoTokenType.LPAREN)
        streaming = False
        if self._peek().type == ProtoTokenType.STREAM and self._peek(1).type != ProtoTokenType.RPAREN:
            self._advance()
            streaming = True
        type_name = self._parse_type_name()
        self._expect(ProtoTokenType.RPAREN)
        return streaming, type_name

    # -- extend parsing --

    def _parse_extend(self) -> ExtendDescriptor:
        """Parse: EXTEND type LBRACE field* RBRACE"""
        self._expect(ProtoTokenType.EXTEND)
        extend = ExtendDescriptor(target_name=self._parse_type_name())
        self._expect(ProtoTokenType.LBRACE)
        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            if self._peek().type == ProtoTokenType.SEMICOLON:
                self._advance()
                continue
            extend.fields.append(self._parse_field())
        self._expect(ProtoTokenType.RBRACE)
        return extend

    # -- options --

    def _parse_option_statement(self) -> Tuple[str, Any]:
        """Parse: OPTION name (= | :) value SEMICOLON"""
        self._expect(ProtoTokenType.OPTION)
        name = self._parse_option_name()
        self._expect_assignment()
        value = self._parse_option_value()
        self._expect(ProtoTokenType.SEMICOLON)
        return name, value

    def _parse_option_name(self) -> str:
        """Parse ``java_package``, ``(my.ext)`` or ``(my.ext).sub.field``."""
        if self._peek().type == ProtoTokenType.LPAREN:
            self._advance()
            prefix = "." if self._peek().type == ProtoTokenType.DOT else ""
            if prefix:
                self._advance()
            name = f"({prefix}{self._parse_full_ident()})"
            self._expect(ProtoTokenType.RPAREN)
        else:
            name = self._expect_name().value
        while self._peek().type == ProtoTokenType.DOT:
            self._advance()
            name += "." + self._expect_name().value
        return name

    def _parse_option_value(self) -> Any:
        """Parse a constant: string, number, bool, identifier or { aggregate }."""
        tok = self._peek()
        if tok.type == ProtoTokenType.STRING_LIT:
            parts = []
            while self._peek().type == ProtoTokenType.STRING_LIT:
                parts.append(self._advance().value)
            return "".join(parts)
        if tok.type == ProtoTokenType.NUMBER:
            self._advance()
            return self._number(tok)
        if tok.type == ProtoTokenType.LBRACE:
            return self._parse_aggregate()
        if tok.is_name:
            self._advance()
            if tok.value == "true":
                return True
            if tok.value == "false":
                return False
            if tok.value in ("inf", "infinity", "nan"):
                return float(tok.value)
            return tok.value
        raise self._error(f"Expected option value, got {tok.type.name} ({tok.value!r})", tok)

    def _parse_aggregate(self) -> Dict[str, Any]:
        """Parse a text-format message literal ``{ key: value ... }`` into a dict."""
        self._expect(ProtoTokenType.LBRACE)
        result: Dict[str, Any] = {}
        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            if self._peek().type in (ProtoTokenType.COMMA, ProtoTokenType.SEMICOLON):
                self._advance()
                continue
            if self._peek().type == ProtoTokenType.LBRACKET:
                self._advance()
                key = f"[{self._parse_full_ident()}]"
                self._expect(ProtoTokenType.RBRACKET)
            else:
                key = self._expect_name().value
            if self._peek().type == ProtoTokenType.COLON:
                self._advance()
            if self._peek().type == ProtoTokenType.LBRACKET:
                value: Any = self._parse_list_value()
            else:
                value = self._parse_option_value()
            if key in result:
                # Repeated keys accumulate, as in text format.
                previous = result[key]
                result[key] = (previous if isinstance(previous, list) else [previous]) + (
                    value if isinstance(value, list) else [value]
                )
            else:
                result[key] = value
        self._expect(ProtoTokenType.RBRACE)
        return result

    def _parse_list_value(self) -> List[Any]:
        self._expect(ProtoTokenType.LBRACKET)
        values: List[Any] = []
        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACKET:
            values.append(self._parse_option_value())
            if self._peek().type == ProtoTokenType.COMMA:
                self._advance()
        self._expect(ProtoTokenType.RBRACKET)
        return values

    def _number(self, tok: ProtoToken) -> Any:
        try:
            return _parse_int(tok.value)
        except ValueError:
            pass
        try:
            return float(tok.value)
        except ValueError:
            raise self._error(f"Invalid number {tok.value!r}", tok) from None

    # -- names --

    def _parse_full_ident(self) -> str:
        """Parse: name (DOT name)*"""
        parts = [self._expect_name().value]
        while self._peek().type == ProtoTokenType.DOT:
            self._advance()
            parts.append(self._expect_name().value)
        return ".".join(parts)

    def _parse_type_name(self) -> str:
        """Parse a possibly absolute dotted type: [DOT] name (DOT name)*"""
        prefix = ""
        if self._peek().type == ProtoTokenType.DOT:
            self._advance()
            prefix = "."
        return prefix + self._parse_full_ident()

    def _claim(self, names: Set[str], name: str, tok: ProtoToken, kind: str) -> None:
        if name in names:
            raise DuplicateDefinitionError(
                f"Duplicate {kind} name '{name}'", self._file_path, tok.line, tok.col
            )
        names.add(name)

    # -- skip helpers --

    def _skip_statement(self) -> None:
        """Skip tokens until (and including) the next semicolon."""
        while not self._at_end():
            tok = self._advance()
            if tok.type == ProtoTokenType.SEMICOLON:
                return
        raise self._error("Expected ';' before end of file")

    # -- token helpers --

    def _peek(self, offset: int = 0) -> ProtoToken:
        pos = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[pos]

    def _advance(self) -> ProtoToken:
        tok = self._tokens[self._pos]
        if tok.type != ProtoTokenType.EOF:
            self._pos += 1
        return tok

    def _expect(self, expected: ProtoTokenType) -> ProtoToken:
        tok = self._peek()
        if tok.type != expected:
            raise self._error(
                f"Expected {expected.name}, got {tok.type.name} ({tok.value!r})",
                tok,
            )
        return self._advance()

    def _expect_name(self) -> ProtoToken:
        tok = self._peek()
        if not tok.is_name:
            raise self._error(f"Expected identifier, got {tok.type.name} ({tok.value!r})", tok)
        return self._advance()

    def _expect_assignment(self) -> None:
        tok = self._peek()
        if tok.type not in (ProtoTokenType.EQUALS, ProtoTokenType.COLON):
            raise self._error(f"Expected '=' or ':', got {tok.type.name} ({tok.value!r})", tok)
        self._advance()

    def _error(self, message: str, token: Optional[ProtoToken] = None) -> ProtoParseError:
        token = token or self._peek()
        return ProtoParseError(message, self._file_path, token.line, token.col)

    def _at_end(self) -> bool:
        return self._tokens[self._pos].type == ProtoTokenType.EOF
