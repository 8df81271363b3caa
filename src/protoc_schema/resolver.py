"""Whole-program type resolution.

Resolution runs in two strictly ordered passes over every loaded file:

* :func:`index_types` assigns full names and fills the :class:`SymbolTable`.
* :func:`resolve_types` binds every non-native field and method type.

All files of a batch are indexed before any of them is resolved, so forward
references and reference cycles (within a file or across imports) bind
against a complete table.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Union

from protoc_schema.models import FileDescriptor, MessageDescriptor, TypeDescriptor, join_package
from protoc_schema.parser.proto_ast_parser import DuplicateDefinitionError

logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """Raised when a loaded schema set cannot be resolved."""


class UnresolvedTypeError(ResolutionError):
    """Raised when a field or method type names nothing in any reachable scope."""

    def __init__(
        self,
        raw_type: str,
        member: str,
        owner: str,
        file_path: Optional[str] = None,
        kind: str = "type of field",
        owner_kind: str = "message",
    ):
        self.raw_type = raw_type
        self.member = member
        self.owner = owner
        self.file_path = file_path
        message = f"Could not resolve {kind} {member} on {owner_kind} {owner} : {raw_type}"
        if file_path:
            message += f" ({file_path})"
        super().__init__(message)


def scope_chain(scope: str) -> Iterator[str]:
    """Yield ``a.b.c``, ``a.b``, ``a``, then ``""``."""
    parts = scope.split(".") if scope else []
    for i in range(len(parts), -1, -1):
        yield ".".join(parts[:i])


class SymbolTable:
    """Fully-qualified type name -> Message or Enum, for one Project session."""

    def __init__(self) -> None:
        self._types: Dict[str, TypeDescriptor] = {}
        self._origins: Dict[str, str] = {}

    def add(self, full_name: str, descriptor: TypeDescriptor, file_path: str = "<input>") -> None:
        existing = self._types.get(full_name)
        if existing is descriptor:
            return
        if existing is not None:
            raise DuplicateDefinitionError(f"Type {full_name} is already defined", file_path)
        self._types[full_name] = descriptor
        self._origins[full_name] = file_path

    def discard_file(self, file_path: str) -> None:
        """Forget every type that was indexed from ``file_path``."""
        for name in [n for n, origin in self._origins.items() if origin == file_path]:
            del self._types[name]
            del self._origins[name]

    def get(self, full_name: str) -> Optional[TypeDescriptor]:
        return self._types.get(full_name.lstrip("."))

    def lookup(self, scope: str, raw_type: str) -> Optional[TypeDescriptor]:
        """Find ``raw_type`` from ``scope`` outwards; the innermost match wins."""
        if raw_type.startswith("."):
            return self._types.get(raw_type[1:])
        for candidate in scope_chain(scope):
            found = self._types.get(join_package(candidate, raw_type))
            if found is not None:
                return found
        return None

    def names(self) -> List[str]:
        return list(self._types)

    def __contains__(self, full_name: object) -> bool:
        return full_name in self._types

    def __len__(self) -> int:
        return len(self._types)


# -- Pass A: indexing --


def index_types(proto: FileDescriptor, symbols: SymbolTable) -> None:
    """Assign full names to every type of ``proto`` and record them in ``symbols``."""
    before = len(symbols)
    _index_scope(proto, proto.package, symbols, proto.file_path)
    for service in proto.services:
        service.package = proto.package
        service.full_name = join_package(proto.package, service.name)
        for method in service.methods:
            method.full_name = join_package(service.full_name, method.name)
    logger.debug("Indexed %d type(s) from %s", len(symbols) - before, proto.file_path)


def _index_scope(
    node: Union[FileDescriptor, MessageDescriptor],
    package: str,
    symbols: SymbolTable,
    file_path: str,
) -> None:
    for message in node.messages:
        message.package = package
        message.full_name = join_package(package, message.name)
        symbols.add(message.full_name, message, file_path)
        _index_scope(message, message.full_name, symbols, file_path)

    for enum in node.enums:
        enum.package = package
        enum.full_name = join_package(package, enum.name)
        symbols.add(enum.full_name, enum, file_path)


# -- Pass B: reference resolution --


def resolve_types(proto: FileDescriptor, symbols: SymbolTable) -> None:
    """Bind every non-native field and method type in ``proto``."""
    for message in proto.iter_messages():
        _resolve_message(message, symbols, proto.file_path)

    for extend in proto.extends:
        for f in extend.fields:
            if f.is_native_type:
                continue
            found = symbols.lookup(proto.package, f.raw_type)
            if found is None:
                raise UnresolvedTypeError(
                    f.raw_type, f.name, extend.target_name, proto.file_path, owner_kind="extend"
                )
            f.set_type_descriptor(found)

    for service in proto.services:
        for method in service.methods:
            input_type = None
            output_type = None
            if not method.is_native_input_type:
                input_type = symbols.lookup(proto.package, method.raw_input_type)
                if input_type is None:
                    raise UnresolvedTypeError(
                        method.raw_input_type, method.name, service.name, proto.file_path,
                        kind="input type of method", owner_kind="service",
                    )
            if not method.is_native_output_type:
                output_type = symbols.lookup(proto.package, method.raw_output_type)
                if output_type is None:
                    raise UnresolvedTypeError(
                        method.raw_output_type, method.name, service.name, proto.file_path,
                        kind="output type of method", owner_kind="service",
                    )
            method.set_type_descriptors(input_type, output_type)


def _resolve_message(message: MessageDescriptor, symbols: SymbolTable, file_path: str) -> None:
    for f in message.fields:
        if f.is_native_type or f.type_descriptor is not None:
            continue
        # Types nested directly in the message shadow everything else.
        found: Optional[TypeDescriptor] = None
        if not f.raw_type.startswith("."):
            found = message.get_nested_type(f.raw_type)
        if found is None:
            found = symbols.lookup(message.full_name, f.raw_type)
        if found is None:
            raise UnresolvedTypeError(f.raw_type, f.name, message.name, file_path)
        f.set_type_descriptor(found)

