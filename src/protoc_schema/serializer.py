"""Plain dict/list views of descriptors for template rendering.

Renderers get every cross-reference inlined: a field's ``typeDescriptor`` is
the full template object of the message or enum it points at. Message types
can refer to each other in cycles, so a message that is already being
expanded further up the call stack is emitted as a stub instead
(``isRecursive: True``), which keeps the output finite and acyclic.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

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
    TypeDescriptor,
)
from protoc_schema.resolver import UnresolvedTypeError


def to_template_object(descriptor: Any) -> Dict[str, Any]:
    return TemplateSerializer().serialize(descriptor)


class TemplateSerializer:
    def __init__(self) -> None:
        self._stack: List[str] = []
        self._snapshots: Dict[str, Dict[str, Any]] = {}

    def serialize(self, descriptor: Any) -> Dict[str, Any]:
        if isinstance(descriptor, FileDescriptor):
            return self._file(descriptor)
        if isinstance(descriptor, MessageDescriptor):
            return self._message(descriptor)
        if isinstance(descriptor, EnumDescriptor):
            return self._enum(descriptor)
        if isinstance(descriptor, EnumValue):
            return self._enum_value(descriptor)
        if isinstance(descriptor, FieldDescriptor):
            return self._field(descriptor, owner="")
        if isinstance(descriptor, ServiceDescriptor):
            return self._service(descriptor)
        if isinstance(descriptor, MethodDescriptor):
            return self._method(descriptor, owner="")
        if isinstance(descriptor, ExtendDescriptor):
            return self._extend(descriptor)
        raise TypeError(f"Cannot serialize {type(descriptor).__name__}")

    def _file(self, proto: FileDescriptor) -> Dict[str, Any]:
        return {
            "name": proto.name,
            "filePath": proto.file_path,
            "package": proto.package,
            "syntax": proto.syntax,
            "options": dict(proto.options),
            "importNames": list(proto.import_names),
            # Summaries only: import graphs may be cyclic.
            "imports": [
                {"name": i.name, "filePath": i.file_path, "package": i.package}
                for i in proto.imports
            ],
            "messages": [self._message(m) for m in proto.messages],
            "enums": [self._enum(e) for e in proto.enums],
            "services": [self._service(s) for s in proto.services],
            "extends": [self._extend(e) for e in proto.extends],
        }

    def _message(self, message: MessageDescriptor) -> Dict[str, Any]:
        key = message.full_name or message.name
        if key in self._stack:
            return {
                "name": message.name,
                "fullName": message.full_name,
                "package": message.package,
                "isMessage": True,
                "isRecursive": True,
            }
        if key in self._snapshots:
            return self._snapshots[key]

        self._stack.append(key)
        try:
            obj = {
                "name": message.name,
                "fullName": message.full_name,
                "package": message.package,
                "camelName": message.camel_name,
                "titleName": message.title_name,
                "upperUnderscoreName": message.upper_underscore_name,
                "isMessage": True,
                "fields": [self._field(f, owner=message.name) for f in message.fields],
                "messages": [self._message(m) for m in message.messages],
                "enums": [self._enum(e) for e in message.enums],
                "oneofs": list(message.oneofs),
                "options": dict(message.options),
            }
        finally:
            self._stack.pop()
        self._snapshots[key] = obj
        return obj

    def _enum(self, enum: EnumDescriptor) -> Dict[str, Any]:
        return {
            "name": enum.name,
            "fullName": enum.full_name,
            "isEnum": True,
            "values": [self._enum_value(v) for v in enum.values],
        }

    def _enum_value(self, value: EnumValue) -> Dict[str, Any]:
        return {"name": value.name, "titleName": value.title_name, "number": value.number}

    def _type(self, descriptor: Optional[TypeDescriptor]) -> Optional[Dict[str, Any]]:
        if descriptor is None:
            return None
        if isinstance(descriptor, EnumDescriptor):
            return self._enum(descriptor)
        return self._message(descriptor)

    def _field(self, f: FieldDescriptor, owner: str) -> Dict[str, Any]:
        if not f.is_resolved:
            raise UnresolvedTypeError(f.raw_type, f.name, owner or "?")
        return {
            "name": f.name,
            "camelName": f.camel_name,
            "titleName": f.title_name,
            "upperUnderscoreName": f.upper_underscore_name,
            "number": f.number,
            "type": f.raw_type,
            "cardinality": f.cardinality.value,
            "required": f.cardinality == Cardinality.REQUIRED,
            "optional": f.cardinality == Cardinality.OPTIONAL,
            "repeated": f.is_repeated,
            "isMap": f.is_map,
            "keyType": f.key_type,
            "oneof": f.oneof,
            "isExtension": f.is_extension,
            "isNativeType": f.is_native_type,
            "options": dict(f.options),
            "typeDescriptor": self._type(f.type_descriptor),
        }

    def _service(self, service: ServiceDescriptor) -> Dict[str, Any]:
        return {
            "name": service.name,
            "fullName": service.full_name,
            "package": service.package,
            "camelName": service.camel_name,
            "titleName": service.title_name,
            "upperUnderscoreName": service.upper_underscore_name,
            "isService": True,
            "options": dict(service.options),
            "methods": [self._method(m, owner=service.name) for m in service.methods],
        }

    def _method(self, method: MethodDescriptor, owner: str) -> Dict[str, Any]:
        if not method.is_native_input_type and method.input_type_descriptor is None:
            raise UnresolvedTypeError(
                method.raw_input_type, method.name, owner or "?",
                kind="input type of method", owner_kind="service",
            )
        if not method.is_native_output_type and method.output_type_descriptor is None:
            raise UnresolvedTypeError(
                method.raw_output_type, method.name, owner or "?",
                kind="output type of method", owner_kind="service",
            )
        return {
            "name": method.name,
            "fullName": method.full_name,
            "camelName": method.camel_name,
            "titleName": method.title_name,
            "upperUnderscoreName": method.upper_underscore_name,
            "inputType": method.raw_input_type,
            "outputType": method.raw_output_type,
            "clientStreaming": method.client_streaming,
            "serverStreaming": method.server_streaming,
            "options": dict(method.options),
            "inputTypeDescriptor": self._type(method.input_type_descriptor),
            "outputTypeDescriptor": self._type(method.output_type_descriptor),
        }

    def _extend(self, extend: ExtendDescriptor) -> Dict[str, Any]:
        return {
            "name": extend.target_name,
            "package": extend.package,
            "fields": [self._field(f, owner=extend.target_name) for f in extend.fields],
        }
