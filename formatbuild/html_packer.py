#!/usr/bin/env python3
"""
HTML Asset Packer

Turns the player's HTML shell into a single self-contained document, because
a story format's player must be one HTML string.

Input:
    - HTML file referencing local images, scripts, stylesheets and icons

Output:
    - Minified HTML string with every resolvable asset inlined

Minification happens while re-serializing. Whitespace runs collapse to one
space. Whitespace-only text next to a block-level tag is dropped, but
between inline elements it is rendered and stays as one space. Comments
are dropped and CSS goes through rcssmin. Script and SVG content is already minified upstream and is copied
as-is.

Unresolvable references stay as written and produce an
AssetResolutionWarning; the build carries on.
"""

import base64
import html
import logging
import mimetypes
import re
import warnings
from html.parser import HTMLParser
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import rcssmin

from .errors import AssetResolutionWarning
from .resolve import is_remote_reference, resolve_asset

logger = logging.getLogger(__name__)

SCRIPT_CLOSE = re.compile(r'</(script)', re.IGNORECASE)
STYLE_CLOSE = re.compile(r'</(style)', re.IGNORECASE)
WHITESPACE = re.compile(r'\s+')

# Text inside these elements is copied verbatim
VERBATIM_TAGS = {'pre', 'textarea', 'script', 'svg'}

# Whitespace next to these elements is rendered, so it collapses but stays
INLINE_TAGS = {
    'a', 'abbr', 'b', 'bdi', 'bdo', 'br', 'button', 'cite', 'code', 'data',
    'dfn', 'em', 'i', 'img', 'input', 'kbd', 'label', 'mark', 'q', 's', 'samp',
    'select', 'small', 'span', 'strong', 'sub', 'sup', 'time', 'u', 'var', 'wbr',
}

Attrs = List[Tuple[str, Optional[str]]]


def data_uri(path: Path) -> str:
    """Encode a file as a base64 data URI."""
    mime_type, _ = mimetypes.guess_type(path.name)
    if path.suffix.lower() == '.svg':
        mime_type = 'image/svg+xml'
    encoded = base64.b64encode(path.read_bytes()).decode('ascii')
    return f'data:{mime_type or "application/octet-stream"};base64,{encoded}'


def format_attrs(attrs: Attrs) -> str:
    parts = []
    for name, value in attrs:
        if value is None:
            parts.append(f' {name}')
        else:
            parts.append(f' {name}="{html.escape(value, quote=True)}"')
    return ''.join(parts)


def _rel_tokens(attrs: Dict[str, Optional[str]]) -> List[str]:
    return (attrs.get('rel') or '').lower().split()


class AssetInliner(HTMLParser):
    """
    Re-serializes an HTML document, inlining local assets on the way.

    Untouched markup is copied verbatim; only tags that get inlined are
    rewritten.
    """

    def __init__(self, base_dir: Path, minify: bool = True) -> None:
        super().__init__(convert_charrefs=False)
        self.base_dir = base_dir
        self.minify = minify
        self.parts: List[str] = []
        self.unresolved: List[str] = []
        self.inlined: List[Path] = []
        self.in_style = False
        self.verbatim_depth = 0
        self.skip_until_end: Optional[str] = None
        # Name of the element whose tag was written last; None after text
        self.last_tag: Optional[str] = None
        # Index of a whitespace-only space that a following block tag removes
        self.pending_space: Optional[int] = None

    # -------------------------------------------------------------------------
    # Asset lookup
    # -------------------------------------------------------------------------

    def _resolve(self, reference: Optional[str]) -> Optional[Path]:
        if not reference or is_remote_reference(reference):
            return None
        path = resolve_asset(reference, self.base_dir)
        if path is None:
            self.unresolved.append(reference)
            warnings.warn(
                f"Could not resolve asset '{reference}' (relative to {self.base_dir}); leaving it in place",
                AssetResolutionWarning,
                stacklevel=2,
            )
            return None
        self.inlined.append(path)
        return path

    def _inline_tag(self, tag: str, attrs: Attrs) -> Optional[str]:
        """Return replacement markup for an inlinable tag, or None."""
        attr_map = dict(attrs)

        if tag == 'img':
            path = self._resolve(attr_map.get('src'))
            if path:
                rewritten = [(k, data_uri(path) if k == 'src' else v) for k, v in attrs]
                return f'<img{format_attrs(rewritten)}>'

        elif tag == 'script' and attr_map.get('src'):
            path = self._resolve(attr_map.get('src'))
            if path:
                script = path.read_text(encoding='utf-8')
                script = SCRIPT_CLOSE.sub(r'<\\/\1', script)
                kept = [(k, v) for k, v in attrs if k != 'src']
                self.skip_until_end = 'script'
                return f'<script{format_attrs(kept)}>{script}</script>'

        elif tag == 'link':
            rel = _rel_tokens(attr_map)
            if 'stylesheet' in rel:
                path = self._resolve(attr_map.get('href'))
                if path:
                    css = path.read_text(encoding='utf-8')
                    if self.minify:
                        css = rcssmin.cssmin(css)
                    css = STYLE_CLOSE.sub(r'<\\/\1', css)
                    kept = [(k, v) for k, v in attrs if k in ('media', 'nonce', 'title')]
                    return f'<style{format_attrs(kept)}>{css}</style>'
            elif 'icon' in rel:
                path = self._resolve(attr_map.get('href'))
                if path:
                    rewritten = [(k, data_uri(path) if k == 'href' else v) for k, v in attrs]
                    return f'<link{format_attrs(rewritten)}>'

        return None

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def _emit_tag(self, tag: Optional[str], markup: str) -> None:
        """Write tag markup; a block-level tag swallows the space before it."""
        if (self.pending_space is not None
                and self.pending_space == len(self.parts) - 1
                and tag not in INLINE_TAGS):
            self.parts.pop()
        self.pending_space = None
        self.parts.append(markup)
        self.last_tag = tag

    def _emit_text(self, text: str) -> None:
        self.pending_space = None
        self.parts.append(text)
        self.last_tag = None

    def _emit_space(self) -> None:
        # Nothing to separate at the start or after a block-level tag
        if not self.parts or (self.last_tag is not None and self.last_tag not in INLINE_TAGS):
            return
        if self.pending_space is not None:
            return
        self.parts.append(' ')
        self.pending_space = len(self.parts) - 1

    # -------------------------------------------------------------------------
    # HTMLParser callbacks
    # -------------------------------------------------------------------------

    def handle_starttag(self, tag: str, attrs: Attrs) -> None:
        replacement = self._inline_tag(tag, attrs)
        if replacement is not None:
            self._emit_tag(tag, replacement)
            return
        if tag == 'style':
            self.in_style = True
        elif tag in VERBATIM_TAGS:
            self.verbatim_depth += 1
        self._emit_tag(tag, self.get_starttag_text())

    def handle_startendtag(self, tag: str, attrs: Attrs) -> None:
        replacement = self._inline_tag(tag, attrs)
        if replacement is not None:
            # A self-closed <script/> has no end tag to skip
            self.skip_until_end = None
            self._emit_tag(tag, replacement)
            return
        self._emit_tag(tag, self.get_starttag_text())

    def handle_endtag(self, tag: str) -> None:
        if self.skip_until_end == tag:
            self.skip_until_end = None
            return
        if tag == 'style':
            self.in_style = False
        elif tag in VERBATIM_TAGS and self.verbatim_depth:
            self.verbatim_depth -= 1
        self._emit_tag(tag, f'</{tag}>')

    def handle_data(self, data: str) -> None:
        if self.skip_until_end:
            return
        if self.in_style:
            if self.minify:
                data = rcssmin.cssmin(data)
        elif self.minify and not self.verbatim_depth:
            if not data.strip():
                self._emit_space()
                return
            data = WHITESPACE.sub(' ', data)
        self._emit_text(data)

    def handle_entityref(self, name: str) -> None:
        self._emit_text(f'&{name};')

    def handle_charref(self, name: str) -> None:
        self._emit_text(f'&#{name};')

    def handle_comment(self, data: str) -> None:
        if self.minify:
            return
        self._emit_text(f'<!--{data}-->')

    def handle_decl(self, decl: str) -> None:
        self._emit_tag('!doctype', f'<!{decl}>')

    def handle_pi(self, data: str) -> None:
        self._emit_tag('?', f'<?{data}>')

    def unknown_decl(self, data: str) -> None:
        self._emit_tag('![', f'<![{data}]>')


    def result(self) -> str:
        return ''.join(self.parts)


def inline_assets(source: str, base_dir: Path, minify: bool = True) -> Tuple[str, List[str]]:
    """
    Inline every resolvable asset of an HTML document.

    Args:
        source: HTML text
        base_dir: Directory references are relative to
        minify: Collapse whitespace and minify CSS while serializing

    Returns:
        Tuple of (html, unresolved references)
    """
    parser = AssetInliner(base_dir, minify=minify)
    parser.feed(source)
    parser.close()
    logger.debug("Inlined %d asset(s)", len(parser.inlined))
    return parser.result(), parser.unresolved


def pack_html(path: Path) -> str:
    """
    Pack an HTML file into a single minified document.

    Args:
        path: HTML document to pack

    Returns:
        Self-contained HTML string

    Raises:
        FileNotFoundError: If the document itself is missing
    """
    path = Path(path).resolve()
    source = path.read_text(encoding='utf-8')

    packed, unresolved = inline_assets(source, path.parent)
    if unresolved:
        logger.warning("%d asset reference(s) left unresolved in %s", len(unresolved), path.name)

    return packed
