from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

# Proto scalar types; any field type not in this set is a message or enum reference.
NATIVE_TYPES = frozenset({
    "double", "float",
    "int32", "int64", "uint32", "uint64",
    "sint32", "sint64", "fixed32", "fixed64", "sfixed32", "sfixed64",
    "bool", "string", "bytes",
})

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def is_native_type(type_name: str) -> bool:
    return type_name in NATIVE_TYPES


def join_package(package: str, name: str) -> str:
    """Join a dotted scope and a name, tolerating an empty scope."""
    return f"{package}.{name}" if package else name


def camel_case(name: str) -> str:
    """``shoe_id`` -> ``shoeId``, ``LaceShoe`` -> ``laceShoe``."""
    parts = [p for p in name.split("_") if p]
    if not parts:
        return name
    head = parts[0][0].lower() + parts[0][1:]
    return head + "".join(p[0].upper() + p[1:] for p in parts[1:])


def title_case(name: str) -> str:
    """``shoe_id`` -> ``ShoeId``; all-caps names are lowered first (``WORK_FAX`` -> ``WorkFax``)."""
    if name.isupper():
        name = name.lower()
    camel = camel_case(name)
    return camel[:1].upper() + camel[1:]


def upper_underscore(name: str) -> str:
    """``LaceShoe`` -> ``LACE_SHOE``, ``customFields`` -> ``CUSTOM_FIELDS``."""
    return _WORD_BOUNDARY.sub("_", name).upper()


class Cardinality(str, Enum):
    SINGULAR = "singular"
    OPTIONAL = "optional"
    REQUIRED = "required"
    REPEATED = "repeated"


class _Named:
    """Derived display names shared by every named descriptor."""

    name: str

    @property
    def camel_name(self) -> str:
        return camel_case(self.name)

    @property
    def title_name(self) -> str:
        return title_case(self.name)

    @property
    def upper_underscore_name(self) -> str:
        return upper_underscore(self.name)

    def to_template_object(self) -> Dict[str, Any]:
        from protoc_schema.serializer import to_template_object

        return to_template_object(self)


@dataclass(eq=False)
class EnumValue(_Named):
    name: str
    number: int
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class EnumDescriptor(_Named):
    name: str
    values: List[EnumValue] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    package: str = ""
    full_name: str = ""

    def get_value(self, name: str) -> Optional[EnumValue]:
        return next((v for v in self.values if v.name == name), None)


TypeDescriptor = Union["MessageDescriptor", EnumDescriptor]


@dataclass(eq=False)
class FieldDescriptor(_Named):
    """A field declaration.

    ``raw_type`` is the type as written in source. ``type_descriptor`` stays
    ``None`` for native scalars; for everything else the type resolver points
    it at the shared Message/Enum the name denotes.
    """

    name: str
    raw_type: str
    number: int
    cardinality: Cardinality = Cardinality.SINGULAR
    options: Dict[str, Any] = field(default_factory=dict)
    oneof: Optional[str] = None
    key_type: Optional[str] = None
    is_extension: bool = False
    type_descriptor: Optional[TypeDescriptor] = field(default=None, repr=False)

    @property
    def is_native_type(self) -> bool:
        return is_native_type(self.raw_type)

    @property
    def is_resolved(self) -> bool:
        return self.is_native_type or self.type_descriptor is not None

    @property
    def is_map(self) -> bool:
        return self.key_type is not None

    @property
    def is_repeated(self) -> bool:
        return self.cardinality == Cardinality.REPEATED

    def set_type_descriptor(self, descriptor: TypeDescriptor) -> None:
        self.type_descriptor = descriptor


@dataclass(eq=False)
class MessageDescriptor(_Named):
    name: str
    fields: List[FieldDescriptor] = field(default_factory=list)
    messages: List[MessageDescriptor] = field(default_factory=list)
    enums: List[EnumDescriptor] = field(default_factory=list)
    oneofs: List[str] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    package: str = ""
    full_name: str = ""

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        return next((f for f in self.fields if f.name == name), None)

    def get_message(self, name: str) -> Optional[MessageDescriptor]:
        return next((m for m in self.messages if m.name == name), None)

    def get_enum(self, name: str) -> Optional[EnumDescriptor]:
        return next((e for e in self.enums if e.name == name), None)

    def get_nested_type(self, name: str) -> Optional[TypeDescriptor]:
        return self.get_message(name) or self.get_enum(name)

    def add_field(
        self,
        type_: Union[str, TypeDescriptor],
        name: str,
        number: int,
        cardinality: Cardinality = Cardinality.OPTIONAL,
    ) -> FieldDescriptor:
        """Append a synthetic, already-resolved field after the existing ones."""
        if isinstance(type_, str):
            if not is_native_type(type_):
                raise ValueError(
                    f"Synthetic field '{name}' needs a native type or a descriptor, got {type_!r}"
                )
            new_field = FieldDescriptor(name=name, raw_type=type_, number=number, cardinality=cardinality)
        else:
            new_field = FieldDescriptor(
                name=name,
                raw_type=type_.full_name or type_.name,
                number=number,
                cardinality=cardinality,
                type_descriptor=type_,
            )
        self.fields.append(new_field)
        return new_field

    add_synthetic_field = add_field

    def remove_field_by_name(self, name: str) -> None:
        """Remove the first field called ``name``; absent names are ignored."""
        for i, f in enumerate(self.fields):
            if f.name == name:
                del self.fields[i]
                return

    def iter_messages(self) -> Iterator[MessageDescriptor]:
        for nested in self.messages:
            yield nested
            yield from nested.iter_messages()


@dataclass(eq=False)
class MethodDescriptor(_Named):
    name: str
    raw_input_type: str
    raw_output_type: str
    client_streaming: bool = False
    server_streaming: bool = False
    options: Dict[str, Any] = field(default_factory=dict)
    full_name: str = ""
    input_type_descriptor: Optional[TypeDescriptor] = field(default=None, repr=False)
    output_type_descriptor: Optional[TypeDescriptor] = field(default=None, repr=False)

    @property
    def is_native_input_type(self) -> bool:
        return is_native_type(self.raw_input_type)

    @property
    def is_native_output_type(self) -> bool:
        return is_native_type(self.raw_output_type)

    def set_type_descriptors(
        self,
        input_type: Optional[TypeDescriptor],
        output_type: Optional[TypeDescriptor],
    ) -> None:
        self.input_type_descriptor = input_type
        self.output_type_descriptor = output_type


@dataclass(eq=False)
class ServiceDescriptor(_Named):
    name: str
    methods: List[MethodDescriptor] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    package: str = ""
    full_name: str = ""

    def get_method(self, name: str) -> Optional[MethodDescriptor]:
        return next((m for m in self.methods if m.name == name), None)


@dataclass(eq=False)
class ExtendDescriptor:
    """An ``extend Target { ... }`` block awaiting the extension merge."""

    target_name: str
    fields: List[FieldDescriptor] = field(default_factory=list)
    package: str = ""

    @property
    def name(self) -> str:
        return self.target_name

    def merge_into(self, message: MessageDescriptor) -> None:
        for f in self.fields:
            f.is_extension = True
            message.fields.append(f)

    def to_template_object(self) -> Dict[str, Any]:
        from protoc_schema.serializer import to_template_object

        return to_template_object(self)


@dataclass(eq=False)
class FileDescriptor:
    """One parsed .proto source file."""

    file_path: str
    package: str = ""
    syntax: str = "proto2"
    import_names: List[str] = field(default_factory=list)
    imports: List[FileDescriptor] = field(default_factory=list, repr=False)
    messages: List[MessageDescriptor] = field(default_factory=list)
    enums: List[EnumDescriptor] = field(default_factory=list)
    services: List[ServiceDescriptor] = field(default_factory=list)
    extends: List[ExtendDescriptor] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return os.path.basename(self.file_path)

    def add_import(self, proto: FileDescriptor) -> None:
        self.imports.append(proto)

    def get_option(self, name: str, default: Any = None) -> Any:
        return self.options.get(name, default)

    def get_message(self, name: str) -> Optional[MessageDescriptor]:
        return next((m for m in self.messages if m.name == name), None)

    def get_enum(self, name: str) -> Optional[EnumDescriptor]:
        return next((e for e in self.enums if e.name == name), None)

    def get_service(self, name: str) -> Optional[ServiceDescriptor]:
        return next((s for s in self.services if s.name == name), None)

    def iter_messages(self) -> Iterator[MessageDescriptor]:
        """All messages of this file, depth-first, nested ones after their parent."""
        for message in self.messages:
            yield message
            yield from message.iter_messages()

    def find_type(self, name: str) -> Optional[TypeDescriptor]:
        """Find a message or enum by full name or by a name relative to the package."""
        name = name.lstrip(".")
        if self.package:
            if name.startswith(self.package + "."):
                name = name[len(self.package) + 1:]
            elif name == self.package:
                return None
        parts = name.split(".")
        messages, enums = self.messages, self.enums
        for i, part in enumerate(parts):
            last = i == len(parts) - 1
            message = next((m for m in messages if m.name == part), None)
            if last:
                return message or next((e for e in enums if e.name == part), None)
            if message is None:
                return None
            messages, enums = message.messages, message.enums
        return None

    def to_template_object(self) -> Dict[str, Any]:
        from protoc_schema.serializer import to_template_object

        return to_template_object(self)
