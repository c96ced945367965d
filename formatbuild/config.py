"""
Build configuration.

Holds the fixed bundling policy (targets, externals, loaders, banner), the
immutable BuildConfig passed into every bundling phase, the ProjectLayout
describing where sources and outputs live, and the package.json loader.
"""

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .plugins import (
    BundlerPlugin,
    SourceMapUrlPlugin,
    StyleMinifyPlugin,
    codemirror_browser_env_plugin,
    strip_use_strict_plugin,
)


# =============================================================================
# DEFAULTS
# =============================================================================

# Same browsers as Twine 2.4, plus Chrome 66 (the Twine 2.3 desktop app).
DEFAULT_TARGETS = ('chrome66', 'edge101', 'firefox100', 'ios12.2', 'safari13.1')

# Only imported from CodeMirror's UMD branches, which are dead once the
# browser-env plugin has run and the minifier strips them.
DEFAULT_EXTERNALS = ('../../lib/codemirror', '../meta', '../xml/xml')

# CSS is injected into the page at runtime; images must be data URLs because
# Twine 2.4 expects them inline.
DEFAULT_LOADERS = {
    '.css': 'text',
    '.svg': 'dataurl',
    '.png': 'dataurl',
}

STRICT_BANNER = '"use strict";'

DEFAULT_EXCLUDED_KEYS = ('dependencies', 'devDependencies', 'eslintConfig')

CONSTANT_PREFIX = 'PACKAGE.'

# Host namespace the editor extensions are published under when the bundle
# is evaluated with `new Function(hydrate).call(target)`.
EDITOR_GLOBAL_NAME = 'editorExtensions'
EDITOR_NAMESPACE = 'this.editorExtensions'


@dataclass(frozen=True)
class BuildConfig:
    """Immutable options for one esbuild invocation."""

    targets: Tuple[str, ...] = DEFAULT_TARGETS
    externals: Tuple[str, ...] = DEFAULT_EXTERNALS
    loaders: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_LOADERS))
    minify: bool = True
    sourcemap: Optional[str] = 'linked'
    banner: Optional[str] = STRICT_BANNER
    footer: Optional[str] = None
    global_name: Optional[str] = None
    format: str = 'iife'
    plugins: Tuple[BundlerPlugin, ...] = ()
    defines: Mapping[str, str] = field(default_factory=dict)
    # Large string constants, emitted as an injected module instead of
    # command-line defines.
    inject: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only views over private copies; callers' dicts stay independent
        for name in ('loaders', 'defines', 'inject'):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @classmethod
    def for_modules(cls, defines: Mapping[str, str],
                    source_map_prefix: Optional[str] = None) -> 'BuildConfig':
        """Build the shared template used by every JS phase."""
        return cls(
            plugins=(
                codemirror_browser_env_plugin(),
                strip_use_strict_plugin(),
                StyleMinifyPlugin(),
                SourceMapUrlPlugin(source_map_prefix),
            ),
            defines=dict(defines),
        )

    def specialize(self, **changes: Any) -> 'BuildConfig':
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class ProjectLayout:
    """Where a story format project keeps its sources and build outputs."""

    root: Path
    out_dir: Path
    package_json: Path
    editor_entry: Path
    player_entry: Path
    player_html: Path
    format_entry: Path
    editor_output: str = 'hydrate.js'
    player_output: str = 'player.js'
    format_output: str = 'format.js'

    @classmethod
    def from_root(cls, root: Path, out_dir: Optional[Path] = None) -> 'ProjectLayout':
        """Standard layout: package.json at the root, sources under src/."""
        root = Path(root).resolve()
        src = root / 'src'
        return cls(
            root=root,
            out_dir=Path(out_dir).resolve() if out_dir else root / 'build',
            package_json=root / 'package.json',
            editor_entry=src / 'editor' / 'hydrate.ts',
            player_entry=src / 'player' / 'index.ts',
            player_html=src / 'player' / 'index.html',
            format_entry=src / 'format.ts',
        )

    @property
    def editor_outfile(self) -> Path:
        return self.out_dir / self.editor_output

    @property
    def player_outfile(self) -> Path:
        return self.out_dir / self.player_output

    @property
    def format_outfile(self) -> Path:
        return self.out_dir / self.format_output


def load_project_config(package_json: Path) -> Dict[str, Any]:
    """
    Load the project configuration record.

    Args:
        package_json: Path to package.json

    Returns:
        Parsed configuration dict

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a JSON object
    """
    with open(package_json, 'r', encoding='utf-8') as f:
        config = json.load(f)

    if not isinstance(config, dict):
        raise ValueError(f"Project configuration must be a JSON object: {package_json}")

    return config
