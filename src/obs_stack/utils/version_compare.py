"""Version and image tag validation."""

from __future__ import annotations

import re

from packaging.version import Version, InvalidVersion

_IMAGE_TAG_RE = re.compile(r"^\w[\w.-]{0,127}$")


def parse_version(v: str) -> Version | None:
    """Parse a version string, returning None on failure."""
    try:
        return Version(v)
    except InvalidVersion:
        # Try stripping leading 'v'
        if v.startswith("v"):
            try:
                return Version(v[1:])
            except InvalidVersion:
                pass
    return None


def is_valid_image_tag(tag: str) -> bool:
    """Return True if ``tag`` is a syntactically valid container image tag."""
    return bool(_IMAGE_TAG_RE.match(tag or ""))
