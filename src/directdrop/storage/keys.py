"""Object key generation."""

import re
import secrets
import string
import time
from typing import Any, Mapping, Optional

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_EXTENSION = re.compile(r"\.[^/.]+$")
_ALPHABET = string.ascii_lowercase + string.digits


def sanitize_filename(filename: str, preserve_extension: bool = True) -> str:
    """Replace every character outside ``[A-Za-z0-9.-]`` with an underscore.

    Args:
        filename: Original client-side file name
        preserve_extension: Keep the trailing ``.ext`` when True

    Returns:
        Safe file name component for an object key
    """
    safe = _UNSAFE_CHARS.sub("_", filename)
    if not preserve_extension:
        safe = _EXTENSION.sub("", safe)
    return safe[:255] or "file"


def random_id(length: int = 13) -> str:
    """Short random disambiguator so equal names never collide."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def identity_from_metadata(metadata: Optional[Mapping[str, Any]]) -> str:
    """Pick the uploader identity out of middleware metadata."""
    if not metadata:
        return "anonymous"
    for key in ("user_id", "userId"):
        value = metadata.get(key)
        if value:
            return str(value)
    user = metadata.get("user")
    if isinstance(user, Mapping) and user.get("id"):
        return str(user["id"])
    return "anonymous"


def generate_file_key(
    original_name: str,
    user_id: str = "anonymous",
    prefix: str = "",
    preserve_extension: bool = True,
    add_timestamp: bool = True,
    add_random_id: bool = True,
    timestamp_ms: Optional[int] = None,
) -> str:
    """Build ``{prefix}/{user}/{timestamp}/{random}/{filename}``.

    Empty components are dropped.
    """
    parts = [prefix, _UNSAFE_CHARS.sub("_", user_id)]
    if add_timestamp:
        parts.append(str(timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)))
    if add_random_id:
        parts.append(random_id())
    parts.append(sanitize_filename(original_name, preserve_extension))
    return join_key(*parts)


def join_key(*parts: str) -> str:
    """Join key segments with single slashes, dropping empty segments."""
    cleaned = [part.strip("/") for part in parts if part and part.strip("/")]
    return re.sub(r"/+", "/", "/".join(cleaned))
