from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from jinja2 import TemplateError

from protoc_schema.parser.proto_tokenizer import ProtoParseError
from protoc_schema.project import Project
from protoc_schema.resolver import ResolutionError


def run(
    protos: List[str],
    base_path: str = ".",
    proto_paths: Optional[List[str]] = None,
    template: Optional[str] = None,
    template_dir: Optional[str] = None,
    out_dir: Optional[str] = None,
    suffix: Optional[str] = None,
    dump: bool = False,
) -> Project:
    """Load and resolve ``protos``; optionally dump them or render ``template``."""
    project = Project(base_path)
    if proto_paths:
        project.set_protoc_paths(proto_paths)
    if template_dir:
        project.set_template_dir(template_dir)
    if out_dir:
        project.set_out_dir(out_dir)

    for proto in protos:
        if template:
            project.add_job(proto, template, suffix)
        else:
            project.add_proto(proto)

    loaded = project.get_protos()
    print(f"Resolved {len(loaded)} proto file(s), {len(project.symbols)} type(s)", file=sys.stderr)

    if dump:
        json.dump([p.to_template_object() for p in loaded], sys.stdout, indent=2)
        sys.stdout.write("\n")

    if template:
        for f in project.compile():
            print(f"  Generated: {f}", file=sys.stderr)

    return project


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Parse and resolve .proto schemas, then render them through jinja2 templates",
    )
    parser.add_argument("protos", nargs="+", help="Proto files, relative to the proto paths")
    parser.add_argument(
        "--base-path",
        default=".",
        help="Directory that relative paths are resolved against (default: cwd)",
    )
    parser.add_argument(
        "--proto-path",
        action="append",
        dest="proto_paths",
        help="Directory to search for imports; repeat to add more, first match wins",
    )
    parser.add_argument("--template", help="jinja2 template to render for each proto")
    parser.add_argument("--template-dir", help="Directory holding the templates")
    parser.add_argument("--out-dir", help="Output directory (default: <base>/genfiles)")
    parser.add_argument("--suffix", help="Suffix appended to generated file names")
    parser.add_argument("--dump", action="store_true", help="Print the resolved template objects as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        run(
            args.protos,
            base_path=args.base_path,
            proto_paths=args.proto_paths,
            template=args.template,
            template_dir=args.template_dir,
            out_dir=args.out_dir,
            suffix=args.suffix,
            dump=args.dump,
        )
    except (ProtoParseError, ResolutionError, TemplateError) as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
