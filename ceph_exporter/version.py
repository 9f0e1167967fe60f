# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Ceph release model.

The cluster reports its version as a banner such as
``ceph version 16.2.11-22-gabc123 (1984a8c3...) pacific (stable)``. Collectors
use the parsed Version to pick between payload shapes that changed across
releases.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Dict, Union

from ceph_exporter.errors import InvalidVersion, ParseError


# ceph-ansible builds report X.Y.Z-R.hash instead of X.Y.Z-R-hash
_ANSIBLE_SUFFIX = re.compile(r'(\d+\.\d+\.\d+-\d+)\.(.*)')


@dataclass(frozen=True, order=True)
class Version:
    """A comparable Ceph version; commit is informational only."""
    major: int
    minor: int
    patch: int
    revision: int = 0
    commit: str = field(default="", compare=False)

    def is_at_least(self, constraint: 'Version') -> bool:
        return self >= constraint

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision or self.commit:
            text = f"{text}-{self.revision}"
            if self.commit:
                text = f"{text}-{self.commit}"
        return text


NAUTILUS = Version(14, 2, 0)
OCTOPUS = Version(15, 2, 0)
PACIFIC = Version(16, 2, 0)
QUINCY = Version(17, 2, 0)

# Used when the version cannot be determined; selects the oldest payload shapes
OLDEST = Version(0, 0, 0)


def parse_ceph_version(raw: str) -> Version:
    """
    Parse a ``ceph version X.Y.Z[-R-hash] <codename> (<stability>)`` banner.

    Args:
        raw: Banner as returned by the ``version`` command

    Returns:
        Version

    Raises:
        InvalidVersion: If the banner does not carry an X.Y.Z field
    """
    normalized = _ANSIBLE_SUFFIX.sub(r'\1-\2', raw or "")
    fields = normalized.split(" ")
    if len(fields) < 3:
        raise InvalidVersion(f"invalid version: {raw!r}")

    numbers = fields[2].split(".")
    if len(numbers) != 3:
        raise InvalidVersion(f"invalid version: {raw!r}")

    tail = numbers[2].split("-")
    if len(tail) == 1:
        tail = [tail[0], "0", ""]
    elif len(tail) != 3:
        raise InvalidVersion(f"invalid version: {raw!r}")

    try:
        return Version(
            major=int(numbers[0]),
            minor=int(numbers[1]),
            patch=int(tail[0]),
            revision=int(tail[1]),
            commit=tail[2],
        )
    except ValueError as e:
        raise InvalidVersion(f"invalid version: {raw!r}") from e


def parse_version_payload(payload: Union[bytes, str]) -> Version:
    """Parse the JSON answer of the ``version`` command."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise ParseError(f"version payload is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("version payload is not an object", field="version")

    # older releases capitalise the key
    banner = None
    for key, value in data.items():
        if key.lower() == "version":
            banner = value
            break
    if not isinstance(banner, str):
        raise ParseError("version payload has no version string", field="version")
    return parse_ceph_version(banner)


def parse_ceph_versions(payload: Union[bytes, str]) -> Dict[str, Dict[str, int]]:
    """
    Parse the answer of the ``versions`` command.

    Returns:
        Mapping of daemon kind (``mon``, ``osd``, ``rbd-mirror``, ...) to a
        mapping of version banner to daemon count
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise ParseError(f"versions payload is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("versions payload is not an object", field="versions")

    versions: Dict[str, Dict[str, int]] = {}
    for daemon, banners in data.items():
        # entries that are not objects carry no per-version counts
        if not isinstance(banners, dict):
            continue
        versions[daemon] = {
            banner: int(count) for banner, count in banners.items()
            if isinstance(count, (int, float)) and not isinstance(count, bool)
        }
    return versions
