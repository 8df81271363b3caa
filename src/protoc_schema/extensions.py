from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from protoc_schema.models import ExtendDescriptor, FileDescriptor, MessageDescriptor, join_package
from protoc_schema.resolver import scope_chain

logger = logging.getLogger(__name__)


def merge_extensions(protos: Iterable[FileDescriptor]) -> int:
    """Append the fields of every ``extend`` block to the message it targets.

    Files must already be indexed. A block whose target is not among
    ``protos`` stays on its file untouched; it is not an error. Merged
    blocks are removed, so running the merge again is a no-op for them.
    Returns the number of blocks merged.
    """
    protos = list(protos)
    messages_by_name: Dict[str, MessageDescriptor] = {}
    for proto in protos:
        for message in proto.iter_messages():
            messages_by_name[message.full_name] = message

    merged = 0
    for proto in protos:
        remaining: List[ExtendDescriptor] = []
        for extend in proto.extends:
            target = _find_target(extend, messages_by_name)
            if target is None:
                logger.debug(
                    "No loaded message %s for extend in %s, skipping",
                    extend.target_name, proto.file_path,
                )
                remaining.append(extend)
                continue
            extend.merge_into(target)
            merged += 1
        proto.extends = remaining
    return merged


def _find_target(
    extend: ExtendDescriptor,
    messages_by_name: Dict[str, MessageDescriptor],
) -> Optional[MessageDescriptor]:
    if extend.target_name.startswith("."):
        return messages_by_name.get(extend.target_name[1:])
    # The declaring package comes first, then its enclosing scopes.
    for scope in scope_chain(extend.package):
        target = messages_by_name.get(join_package(scope, extend.target_name))
        if target is not None:
            return target
    return None
