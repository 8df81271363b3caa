"""A project: the parsing, resolution and rendering of a set of proto schemas."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from jinja2 import Environment, FileSystemLoader

from protoc_schema.extensions import merge_extensions
from protoc_schema.loader import ImportResolver
from protoc_schema.models import FileDescriptor, TypeDescriptor
from protoc_schema.resolver import ResolutionError, SymbolTable, index_types, resolve_types

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE_DIR = str(Path(__file__).parent / "include")

OutputFn = Callable[[FileDescriptor, str, str], Any]


class UnknownProtoError(ResolutionError):
    """Raised when asking for a proto file that was never added to the project."""


@dataclass
class CompileJob:
    proto: str
    template: str
    suffix: Optional[str] = None


def default_output_fn(descriptor: FileDescriptor, out_file: str, contents: str) -> str:
    """Write ``contents`` to ``out_file``, creating parent directories."""
    os.makedirs(os.path.dirname(out_file), exist_ok=True)
    Path(out_file).write_text(contents, encoding="utf-8")
    return out_file


class Project:
    """Owns search paths, the parsed-file cache, the symbol table and output jobs.

    Every setter returns the project so calls can be chained::

        Project("schemas").add_job("shop.proto", "model.j2", ".py").compile()
    """

    def __init__(self, base_path: Optional[str] = None):
        base_path = os.path.realpath(base_path or os.getcwd())
        self._base_path = base_path
        self._protoc_paths: List[str] = [base_path, DEFAULT_INCLUDE_DIR]
        self._out_dir = os.path.join(base_path, "genfiles")
        self._out_dirs: Dict[str, str] = {}
        self._template_dir = base_path
        self._default_suffix = ".js"
        self._environment_options: Dict[str, Any] = {}
        self._output_fn: OutputFn = default_output_fn

        # Canonical path -> parsed file, in discovery order.
        self._protos: Dict[str, FileDescriptor] = {}
        self._indexed: Set[str] = set()
        self._resolved: Set[str] = set()
        self._symbols = SymbolTable()
        self._compile_jobs: List[CompileJob] = []
        self._resolved_extensions = False

    def __repr__(self) -> str:
        return (
            f"Project(base_path={self._base_path!r}, protoc_paths={self._protoc_paths!r}, "
            f"out_dir={self._out_dir!r}, template_dir={self._template_dir!r}, "
            f"jobs={self._compile_jobs!r}, protos={list(self._protos)!r})"
        )

    # -- configuration --

    def set_template_dir(self, template_dir: str) -> Project:
        self._template_dir = os.path.join(self._base_path, template_dir)
        return self

    def set_output_fn(self, output_fn: OutputFn) -> Project:
        """Replace the function receiving (descriptor, file name, contents) for each job."""
        self._output_fn = output_fn
        return self

    def set_environment_options(self, **options: Any) -> Project:
        """Extra keyword arguments for the jinja2 Environment, merged onto the defaults."""
        self._environment_options.update(options)
        return self

    def set_out_dir(self, out_dir: str, suffix: Optional[str] = None) -> Project:
        """Set the default output directory, or the one used for ``suffix``."""
        resolved = os.path.join(self._base_path, out_dir)
        if suffix:
            self._out_dirs[suffix] = resolved
        else:
            self._out_dir = resolved
        return self

    def set_default_suffix(self, suffix: str) -> Project:
        self._default_suffix = suffix
        return self

    def set_protoc_paths(self, protoc_paths: Sequence[str]) -> Project:
        if not isinstance(protoc_paths, (list, tuple)):
            raise TypeError("protoc_paths must be a list of directories")
        self._protoc_paths = [os.path.join(self._base_path, p) for p in protoc_paths]
        return self

    @property
    def symbols(self) -> SymbolTable:
        return self._symbols

    # -- loading --

    def add_job(self, proto_file: str, template_name: str, suffix: Optional[str] = None) -> Project:
        """Add a compilation job; ``proto_file`` and all of its imports are loaded now."""
        self.add_proto(proto_file)
        self._compile_jobs.append(CompileJob(self._resolve(proto_file), template_name, suffix))
        return self

    def add_proto(self, file_name: str) -> Project:
        self._process_proto(file_name)
        return self

    def _process_proto(self, file_name: str) -> FileDescriptor:
        known = set(self._protos)
        try:
            proto = ImportResolver(self._protoc_paths, self._protos).load(file_name)

            pending = [p for path, p in self._protos.items() if path not in self._resolved]
            if not pending:
                return proto

            # Index every new file before resolving any of them.
            for p in pending:
                if p.file_path not in self._indexed:
                    index_types(p, self._symbols)
                    self._indexed.add(p.file_path)
            for p in pending:
                resolve_types(p, self._symbols)
                self._resolved.add(p.file_path)
        except Exception:
            self._discard(set(self._protos) - known)
            raise

        self._resolved_extensions = False
        logger.debug("Resolved %d file(s); %d type(s) known", len(pending), len(self._symbols))
        return proto

    def _discard(self, file_paths: Set[str]) -> None:
        """Drop files loaded by a failed ``add_proto`` together with their types."""
        for path in file_paths:
            del self._protos[path]
            self._symbols.discard_file(path)
            self._indexed.discard(path)
            self._resolved.discard(path)
        if file_paths:
            logger.debug("Discarded %d partially loaded file(s)", len(file_paths))

    def _resolve_extensions(self) -> None:
        if self._resolved_extensions:
            return
        merged = merge_extensions(self._protos.values())
        logger.debug("Merged %d extend block(s)", merged)
        self._resolved_extensions = True

    def _resolve(self, file_name: str) -> str:
        return ImportResolver(self._protoc_paths).resolve_path(file_name)

    # -- queries --

    def get_protos(self, proto_file: Optional[str] = None) -> List[FileDescriptor]:
        """All parsed protos in discovery order, or only ``proto_file``."""
        self._resolve_extensions()
        if not proto_file:
            return list(self._protos.values())

        proto_path = self._resolve(proto_file)
        if proto_path in self._protos:
            return [self._protos[proto_path]]
        raise UnknownProtoError(f"Unknown proto file [{proto_path}]")

    def get_proto(self, proto_file: str) -> FileDescriptor:
        return self.get_protos(proto_file)[0]

    def find_type(self, name: str) -> Optional[TypeDescriptor]:
        """Find a message or enum by fully qualified name, e.g. ``shop.Order.Item``."""
        found = self._symbols.get(name)
        if found is not None:
            return found
        for proto in self._protos.values():
            found = proto.find_type(name)
            if found is not None:
                return found
        return None

    # -- output --

    def compile(self) -> List[Any]:
        """Render every job and pass the results to the output function.

        Returns whatever the output function returned, one entry per job.
        """
        self._resolve_extensions()

        options: Dict[str, Any] = {
            "loader": FileSystemLoader(self._template_dir),
            "keep_trailing_newline": True,
        }
        options.update(self._environment_options)
        env = Environment(**options)

        results = []
        for job in self._compile_jobs:
            descriptor = self.get_protos(job.proto)[0]
            out_file = self._output_path(descriptor, job)
            template = env.get_template(job.template)
            contents = template.render(descriptor.to_template_object())
            logger.info("Rendered %s with %s -> %s", descriptor.name, job.template, out_file)
            results.append(self._output_fn(descriptor, out_file, contents))
        return results

    def _output_path(self, descriptor: FileDescriptor, job: CompileJob) -> str:
        file_path = descriptor.file_path
        if job.suffix == ".java" and descriptor.get_option("java_outer_classname"):
            file_path = os.path.join(os.path.dirname(file_path), descriptor.get_option("java_outer_classname"))
        elif job.suffix in (".h", ".m") and descriptor.get_option("ios_classname"):
            file_path = os.path.join(os.path.dirname(file_path), descriptor.get_option("ios_classname"))

        out_dir = self._out_dirs.get(job.suffix, self._out_dir) if job.suffix else self._out_dir
        relative = os.path.relpath(file_path, self._base_path)
        return os.path.join(out_dir, relative + (job.suffix or self._default_suffix))
