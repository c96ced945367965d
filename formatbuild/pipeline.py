#!/usr/bin/env python3
"""
Story Format Build Pipeline

Sequences the build into its phases:

    INIT -> EDITOR_BUILD || (PLAYER_BUILD -> PLAYER_PACK) -> FINAL_BUILD -> CLEANUP -> DONE

The editor and player branches run concurrently; both results are plain
strings before the final phase embeds them as constants. Any failure moves
the build to FAILED and is re-raised; there are no retries.
"""

import logging
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .bundler import ModuleBundler
from .codegen import host_namespace_footer, render_format_entry
from .config import (
    CONSTANT_PREFIX,
    DEFAULT_EXCLUDED_KEYS,
    EDITOR_GLOBAL_NAME,
    EDITOR_NAMESPACE,
    BuildConfig,
    ProjectLayout,
    load_project_config,
)
from .esbuild_service import EsbuildService
from .flatten import flatten_constants
from .html_packer import pack_html
from .resolve import resolve_asset

logger = logging.getLogger(__name__)


class Stage(Enum):
    INIT = 'init'
    EDITOR_BUILD = 'editor-build'
    PLAYER_BUILD = 'player-build'
    PLAYER_PACK = 'player-pack'
    FINAL_BUILD = 'final-build'
    CLEANUP = 'cleanup'
    DONE = 'done'
    FAILED = 'failed'


def copy_icon(config: Dict[str, Any], root: Path, out_dir: Path) -> Dict[str, Any]:
    """
    Copy the configured icon next to the final artifact.

    Twine prepends the format URL's directory to the icon path, so the icon
    must be a relative file name, not a data URL.

    Args:
        config: Project configuration
        root: Directory the icon path is relative to
        out_dir: Build output directory

    Returns:
        Copy of config with `icon` rewritten to `icon<ext>`

    Raises:
        FileNotFoundError: If the configured icon does not exist
    """
    icon = config.get('icon')
    if not icon:
        logger.warning("No icon configured; skipping icon copy")
        return dict(config)

    source = resolve_asset(icon, root)
    if source is None:
        raise FileNotFoundError(f"Icon not found: {icon} (relative to {root})")

    name = f'icon{Path(icon).suffix}'
    shutil.copyfile(source, out_dir / name)
    logger.info("Copied icon %s -> %s", icon, name)

    updated = dict(config)
    updated['icon'] = name
    return updated


class FormatBuild:
    """One run of the story format build."""

    def __init__(
        self,
        layout: ProjectLayout,
        source_map_prefix: Optional[str] = None,
        exclude_keys: Iterable[str] = DEFAULT_EXCLUDED_KEYS,
        service: Optional[EsbuildService] = None,
    ):
        """
        Args:
            layout: Project sources and output locations
            source_map_prefix: Absolute URL prefix for source map comments
                (None disables rewriting)
            exclude_keys: Config keys never flattened into constants
            service: esbuild runner, shared by every phase
        """
        self.layout = layout
        self.source_map_prefix = source_map_prefix or None
        self.exclude_keys = tuple(exclude_keys)
        self.bundler = ModuleBundler(layout.root, service)

        self.history: List[Stage] = [Stage.INIT]
        self._lock = threading.Lock()

        self.config: Dict[str, Any] = {}
        self.constants: Dict[str, str] = {}
        self.editor_bundle: Optional[str] = None
        self.player_bundle: Optional[str] = None
        self.player_document: Optional[str] = None

    @property
    def stage(self) -> Stage:
        return self.history[-1]

    def _enter(self, stage: Stage) -> None:
        with self._lock:
            self.history.append(stage)
        logger.info("STAGE: %s", stage.value)

    # =========================================================================
    # PHASES
    # =========================================================================

    def prepare(self) -> BuildConfig:
        """Create the output dir, copy the icon and flatten the configuration."""
        self.layout.out_dir.mkdir(parents=True, exist_ok=True)

        config = load_project_config(self.layout.package_json)
        self.config = copy_icon(config, self.layout.package_json.parent, self.layout.out_dir)

        self.constants = flatten_constants(self.config, CONSTANT_PREFIX, self.exclude_keys)
        logger.info("Flattened configuration into %d constant(s)", len(self.constants))

        return BuildConfig.for_modules(self.constants, self.source_map_prefix)

    def build_editor(self, modules: BuildConfig) -> str:
        """Bundle the editor extensions, published on the host namespace."""
        self._enter(Stage.EDITOR_BUILD)
        result = self.bundler.bundle(
            self.layout.editor_entry,
            self.layout.editor_outfile,
            modules.specialize(
                global_name=EDITOR_GLOBAL_NAME,
                footer=host_namespace_footer(EDITOR_GLOBAL_NAME, EDITOR_NAMESPACE),
            ),
        )
        self.editor_bundle = result.text
        return result.text

    def build_player(self, modules: BuildConfig) -> str:
        """Bundle the player script, then pack the player HTML around it."""
        self._enter(Stage.PLAYER_BUILD)
        result = self.bundler.bundle(
            self.layout.player_entry,
            self.layout.player_outfile,
            modules,
        )
        self.player_bundle = result.text

        self._enter(Stage.PLAYER_PACK)
        self.player_document = pack_html(self.layout.player_html)
        return self.player_document

    def build_final(self, modules: BuildConfig, hydrate: str, source: str) -> Path:
        """Bundle the format entry with both intermediates embedded as strings."""
        self._enter(Stage.FINAL_BUILD)
        final = modules.specialize(
            sourcemap=None,
            inject={'HYDRATE': hydrate, 'SOURCE': source},
        )

        entry = self.layout.format_entry
        if entry.exists():
            self.bundler.bundle(entry, self.layout.format_outfile, final)
            return self.layout.format_outfile

        logger.info("No %s in project; using the generated format entry", entry.name)
        with tempfile.TemporaryDirectory(prefix='formatbuild-entry-') as entry_dir:
            generated = Path(entry_dir) / 'format.js'
            generated.write_text(
                render_format_entry(self.constants, CONSTANT_PREFIX, EDITOR_NAMESPACE),
                encoding='utf-8',
            )
            self.bundler.bundle(generated, self.layout.format_outfile, final)
        return self.layout.format_outfile

    def cleanup(self) -> None:
        """Delete intermediate bundles once their text has been embedded."""
        self._enter(Stage.CLEANUP)
        for outfile in (self.layout.player_outfile, self.layout.editor_outfile):
            paths = [outfile]
            # Prefixed source map URLs still point at the maps
            if not self.source_map_prefix:
                paths.append(outfile.with_name(outfile.name + '.map'))
            for path in paths:
                if path.exists():
                    path.unlink()
                    logger.debug("Removed %s", path)

    # =========================================================================
    # RUN
    # =========================================================================

    def run(self) -> Path:
        """
        Run every phase.

        Returns:
            Path of the final artifact

        Raises:
            BuildError: If a bundling phase fails
            OSError: On any file-system failure
        """
        try:
            modules = self.prepare()

            with ThreadPoolExecutor(max_workers=2, thread_name_prefix='formatbuild') as executor:
                editor = executor.submit(self.build_editor, modules)
                player = executor.submit(self.build_player, modules)
                hydrate = editor.result()
                source = player.result()

            artifact = self.build_final(modules, hydrate, source)
            self.cleanup()
        except BaseException:
            self._enter(Stage.FAILED)
            raise

        self._enter(Stage.DONE)
        return artifact


def run_build(root: Path, out_dir: Optional[Path] = None,
              source_map_prefix: Optional[str] = None,
              exclude_keys: Iterable[str] = DEFAULT_EXCLUDED_KEYS,
              service: Optional[EsbuildService] = None) -> Path:
    """Build the story format of the project at `root`."""
    layout = ProjectLayout.from_root(root, out_dir)
    return FormatBuild(layout, source_map_prefix, exclude_keys, service).run()
