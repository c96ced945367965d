"""
Asset path resolution.

Resolves references the way Node's require.resolve does for plain files:
first relative to the referencing directory, then by searching node_modules
directories upwards. Lets templates reference package assets (fonts, icons)
directly.
"""

from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlsplit

REMOTE_SCHEMES = ('http', 'https', 'data', 'blob', 'about', 'javascript', 'mailto')


def is_remote_reference(reference: str) -> bool:
    """True for references that never point at a local file."""
    if reference.startswith('//'):
        return True
    scheme = urlsplit(reference).scheme.lower()
    return scheme in REMOTE_SCHEMES


def resolve_asset(reference: str, base_dir: Path) -> Optional[Path]:
    """
    Resolve an asset reference to a local file.

    Args:
        reference: Path or URL as written in the source (query strings and
            fragments are ignored)
        base_dir: Directory the reference is relative to

    Returns:
        Path of the existing file, or None if it cannot be found
    """
    if not reference or is_remote_reference(reference):
        return None

    path_part = unquote(urlsplit(reference).path)
    if not path_part:
        return None

    candidate = Path(path_part)
    if candidate.is_absolute():
        return candidate if candidate.is_file() else None

    local = base_dir / candidate
    if local.is_file():
        return local.resolve()

    # Explicitly relative references never fall back to node_modules
    if path_part.startswith(('./', '../')):
        return None

    for directory in (base_dir, *base_dir.parents):
        packaged = directory / 'node_modules' / candidate
        if packaged.is_file():
            return packaged.resolve()

    return None
