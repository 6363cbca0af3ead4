"""Normalization of untrusted session ids and upload filenames."""

import re

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_PATH_SEPARATORS = re.compile(r"[\\/]")


def sanitize_id(raw: str | None) -> str:
    """Strip every character outside ``[A-Za-z0-9_-]``.

    The result may be empty. An empty id is syntactically valid but
    degenerate; callers must not treat it as a unique session.
    """
    if not raw:
        return ""
    return _UNSAFE_ID_CHARS.sub("", raw)


def sanitize_filename(raw: str | None) -> str:
    """Return only the last path segment of ``raw``.

    Both ``/`` and ``\\`` are treated as separators. A final segment of
    ``.`` or ``..`` (or one containing a NUL byte) yields ``""`` because it
    would resolve outside the target directory.
    """
    if not raw:
        return ""
    name = _PATH_SEPARATORS.split(raw)[-1].strip()
    if name in (".", "..") or "\x00" in name:
        return ""
    return name
