from __future__ import annotations

import logging
import os
from typing import Iterable

from dockerstart._console import diagnostic
from dockerstart.models import PathMapping, ValidationError

# Paths obtained with `readlink` on a compute client live under /rdcw/fs1,
# cache layer machines see the same storage as /storage1/fs1.
REMAP_FROM = "rdcw/fs1"
REMAP_TO = "storage1/fs1"

_log = logging.getLogger("dockerstart.paths")


def split_data_path(token: str) -> tuple[str, str | None]:
    host, sep, container = token.partition(":")
    if not sep or not container:
        return host, None
    # Only the first two fields count, like `cut -f 2 -d :`.
    return host, container.split(":", 1)[0]


def remap_path(path: str) -> str:
    return path.replace(REMAP_FROM, REMAP_TO, 1)


def resolve_path_mapping(
    token: str, *, no_absolute: bool = False, remap: bool = False
) -> PathMapping:
    """Turn one ``host[:container]`` token into a :class:`PathMapping`.

    The host half must be an existing directory. It is canonicalized with
    ``os.path.realpath`` unless *no_absolute* is set; the container half is
    taken verbatim and defaults to the resolved host path.
    """
    host, container = split_data_path(token)
    if not host:
        host = token
    if not os.path.isdir(host):
        raise ValidationError(f"{host} is not an existing directory")

    host_path = host if no_absolute else os.path.realpath(host)
    container_path = container if container is not None else host_path

    if remap:
        host_path = remap_path(host_path)
        container_path = remap_path(container_path)

    diagnostic(f"Mapping {container_path} to {host_path}", timestamped=False)
    _log.info("path_mapped token=%s host=%s container=%s", token, host_path, container_path)
    return PathMapping(host_path=host_path, container_path=container_path)


def resolve_path_mappings(
    tokens: Iterable[str], *, no_absolute: bool = False, remap: bool = False
) -> list[PathMapping]:
    return [
        resolve_path_mapping(token, no_absolute=no_absolute, remap=remap)
        for token in tokens
    ]
