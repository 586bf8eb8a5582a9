"""
Filename helpers for downloaded audio.
"""

import re
from urllib.parse import quote

MAX_FILENAME_LENGTH = 200
FALLBACK_FILENAME = "soundcloud-audio"

# Characters illegal on common filesystems or unsafe inside a quoted header value,
# plus "!" and control characters (C0 and DEL)
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*!\x00-\x1f\x7f]')
_DOT_RUNS = re.compile(r"\.+")


def sanitize_filename(name: str) -> str:
    """
    Map an arbitrary string to a filesystem- and header-safe filename.

    Deterministic and total; sanitizing an already sanitized name is a no-op.

    Args:
        name: Raw name, usually "{artist} - {title}"

    Returns:
        Sanitized name of at most 200 characters

    Example:
        >>> sanitize_filename('AC/DC - Back: In Black?')
        'AC_DC - Back_ In Black_'
    """
    if not isinstance(name, str):
        name = "" if name is None else str(name)

    cleaned = _UNSAFE_CHARS.sub("_", name)
    cleaned = _DOT_RUNS.sub(".", cleaned)
    cleaned = cleaned.strip()
    # Truncation can expose trailing whitespace again
    return cleaned[:MAX_FILENAME_LENGTH].rstrip()


def build_track_filename(artist: str, title: str) -> str:
    """Sanitized "{artist} - {title}" base name (no extension)."""
    return sanitize_filename(f"{artist} - {title}")


def content_disposition(filename: str) -> str:
    """
    Build an attachment Content-Disposition header value.

    Non-ASCII names get an ASCII fallback plus an RFC 5987 ``filename*``
    parameter, the same way Starlette's FileResponse does it.
    """
    try:
        filename.encode("ascii")
    except UnicodeEncodeError:
        fallback = filename.encode("ascii", errors="replace").decode("ascii").replace("?", "_")
        return f"attachment; filename=\"{fallback}\"; filename*=utf-8''{quote(filename)}"
    return f'attachment; filename="{filename}"'
