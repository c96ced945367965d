"""
Bundler plugins.

A plugin can hook two points of a bundle:

- on_load: called for every loaded source file whose path matches
  `load_filter`; returns replacement contents (or None to leave the file
  alone). Matching plugins run in chain order, each one seeing the previous
  one's output.
- on_end: called once with the written output files; returns a replacement
  list (or None to keep it).
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Pattern, Union

import rcssmin

logger = logging.getLogger(__name__)

USE_STRICT_PRAGMAS = {
    '"use strict"': '',
    "'use strict'": '',
}

SOURCE_MAP_URL = re.compile(r'^(//# sourceMappingURL=)(.*)$', re.MULTILINE)


@dataclass(frozen=True)
class OutputFile:
    """A file written by the bundler."""

    path: Path
    contents: bytes

    @property
    def text(self) -> str:
        return self.contents.decode('utf-8')


class BundlerPlugin:
    """Base class for bundler plugins. Both hooks default to no-ops."""

    name = 'plugin'
    load_filter: Optional[Pattern] = None

    def matches(self, path: Path) -> bool:
        return self.load_filter is not None and bool(self.load_filter.search(path.as_posix()))

    def on_load(self, path: Path, contents: bytes) -> Optional[bytes]:
        return None

    def on_end(self, outputs: List[OutputFile]) -> Optional[List[OutputFile]]:
        return None

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {self.name}>'


def _compile(pattern: Union[str, Pattern]) -> Pattern:
    return re.compile(pattern) if isinstance(pattern, str) else pattern


class ReplacePlugin(BundlerPlugin):
    """Plain string replacement in loaded sources (no delimiters)."""

    def __init__(self, include: Union[str, Pattern], replacements: Mapping[str, str],
                 name: str = 'replace'):
        self.name = name
        self.load_filter = _compile(include)
        self.replacements = dict(replacements)

    def on_load(self, path: Path, contents: bytes) -> Optional[bytes]:
        text = contents.decode('utf-8')
        for old, new in self.replacements.items():
            text = text.replace(old, new)
        return text.encode('utf-8')


class NullLoaderPlugin(BundlerPlugin):
    """Loads matching files as empty modules, excluding them from the bundle."""

    def __init__(self, include: Union[str, Pattern]):
        self.name = 'null-loader'
        self.load_filter = _compile(include)

    def on_load(self, path: Path, contents: bytes) -> Optional[bytes]:
        return b''


def strip_use_strict_plugin() -> ReplacePlugin:
    """Remove 'use strict' pragmas; the banner re-adds one at the top."""
    return ReplacePlugin(r'\.js$', USE_STRICT_PRAGMAS, name='strip-use-strict')


def codemirror_browser_env_plugin() -> ReplacePlugin:
    """
    Force CodeMirror modes down their plain-browser branch, so they register
    with the host's global CodeMirror instead of importing a fresh copy.
    """
    return ReplacePlugin(
        r'codemirror.*\.js$',
        {
            'typeof exports == "object"': 'false',
            'typeof define == "function"': 'false',
            'typeof module == "object"': 'false',
            'define.amd': 'false',
            **USE_STRICT_PRAGMAS,
        },
        name='codemirror-browser-env',
    )


# =============================================================================
# STYLE MINIFICATION
# =============================================================================

def minify_stylesheet(path: Path, contents: bytes) -> bytes:
    """Minify stylesheets; any other file is returned unchanged."""
    if not str(path).endswith('.css'):
        return contents
    return rcssmin.cssmin(contents.decode('utf-8')).encode('utf-8')


class StyleMinifyPlugin(BundlerPlugin):
    """Run stylesheets through the CSS minifier before they become text assets."""

    name = 'style-minify'
    load_filter = re.compile(r'\.css$')

    def on_load(self, path: Path, contents: bytes) -> Optional[bytes]:
        return minify_stylesheet(path, contents)


# =============================================================================
# SOURCE MAP URLS
# =============================================================================

def rewrite_source_map_urls(text: str, prefix: Optional[str]) -> str:
    """
    Prefix relative sourceMappingURL comments with an absolute base URL.

    Lines already starting with the prefix are left alone, so the rewrite is
    idempotent. An empty prefix is a no-op.
    """
    if not prefix:
        return text

    def _prefix(match):
        url = match.group(2)
        if url.startswith(prefix):
            return match.group(0)
        return f'{match.group(1)}{prefix}{url}'

    return SOURCE_MAP_URL.sub(_prefix, text)


class SourceMapUrlPlugin(BundlerPlugin):
    """
    Rewrite source map URLs to absolute ones.

    The editor bundle runs inside `new Function(...)`, and the player is
    loaded from the story HTML, so devtools cannot resolve a relative map
    path for either of them.
    """

    name = 'source-map-url'

    def __init__(self, prefix: Optional[str] = None):
        self.prefix = prefix or ''

    def on_end(self, outputs: List[OutputFile]) -> Optional[List[OutputFile]]:
        if not self.prefix:
            return None

        result = []
        for output in outputs:
            if output.path.suffix == '.js':
                text = rewrite_source_map_urls(output.text, self.prefix)
                output = OutputFile(output.path, text.encode('utf-8'))
            result.append(output)
        logger.debug("Rewrote source map URLs with prefix %s", self.prefix)
        return result
