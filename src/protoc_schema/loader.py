from __future__ import annotations

import logging
from pathlib import Path
from typing import List, MutableMapping, Optional, Sequence

from protoc_schema.models import FileDescriptor
from protoc_schema.parser.proto_parser import parse_proto, read_proto_text
from protoc_schema.resolver import ResolutionError

logger = logging.getLogger(__name__)


class UnresolvedImportError(ResolutionError):
    """Raised when a proto file is not found under any search path."""

    def __init__(self, file_name: str, attempted: List[str], importer: Optional[str] = None):
        self.file_name = file_name
        self.attempted = attempted
        self.importer = importer
        message = f'File "{file_name}" could not be resolved on protoc paths: {", ".join(attempted)}'
        if importer:
            message += f" (imported from {importer})"
        super().__init__(message)


class ImportResolver:
    """Locate, parse and link a proto file and everything it imports.

    ``cache`` maps canonical absolute paths to parsed files. A file is put in
    the cache before its imports are followed, so an import cycle finds the
    half-loaded file instead of recursing forever, and a file reached through
    several import paths is parsed once.
    """

    def __init__(self, search_paths: Sequence[str], cache: Optional[MutableMapping[str, FileDescriptor]] = None):
        self.search_paths = list(search_paths)
        self.cache: MutableMapping[str, FileDescriptor] = cache if cache is not None else {}

    def resolve_path(self, file_name: str, importer: Optional[str] = None) -> str:
        """Return the canonical path of the first search-path match."""
        attempted: List[str] = []
        for root in self.search_paths:
            candidate = Path(root, file_name).resolve()
            attempted.append(str(candidate))
            if candidate.is_file():
                return str(candidate)
        raise UnresolvedImportError(file_name, attempted, importer)

    def load(self, file_name: str, importer: Optional[str] = None) -> FileDescriptor:
        file_path = self.resolve_path(file_name, importer)
        proto = self.cache.get(file_path)
        if proto is not None:
            return proto

        logger.debug("Loading %s", file_path)
        text = read_proto_text(file_path)
        proto = parse_proto(file_path, text)
        self.cache[file_path] = proto

        for import_name in proto.import_names:
            proto.add_import(self.load(import_name, importer=file_path))
        return proto
