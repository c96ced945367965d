#!/usr/bin/env python3
"""
Module Bundler

Wraps esbuild with the story format bundling policy and the plugin chain.

Input:
    - entry point module, output path, BuildConfig

Output:
    - bundle (and linked source map) written to disk
    - BundleResult with the bundle text

Responsibilities:
    - Translate BuildConfig into esbuild arguments
    - Apply plugin load hooks through a staging tree
    - Map source map paths from the staging tree back to the project
    - Run plugin end hooks and write their results
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .codegen import is_identifier_path, render_constants_module
from .config import BuildConfig
from .errors import BundleError
from .esbuild_service import EsbuildService
from .plugins import BundlerPlugin, OutputFile

logger = logging.getLogger(__name__)


@dataclass
class BundleResult:
    """Text of the generated bundle plus every file written for it."""

    text: str
    files: List[OutputFile] = field(default_factory=list)


def build_arguments(entry: Path, outfile: Path, config: BuildConfig,
                    inject: Optional[Path] = None) -> List[str]:
    """
    Translate a BuildConfig into esbuild command-line arguments.

    Defines whose key is not a dotted identifier chain are skipped, since
    esbuild rejects them.
    """
    args = [str(entry), '--bundle', f'--outfile={outfile}', f'--format={config.format}']

    if config.minify:
        args.append('--minify')
    if config.targets:
        args.append('--target=' + ','.join(config.targets))
    if config.sourcemap:
        args.append(f'--sourcemap={config.sourcemap}')
    for external in config.externals:
        args.append(f'--external:{external}')
    for extension, loader in sorted(config.loaders.items()):
        args.append(f'--loader:{extension}={loader}')
    if config.banner:
        args.append(f'--banner:js={config.banner}')
    if config.footer:
        args.append(f'--footer:js={config.footer}')
    if config.global_name:
        args.append(f'--global-name={config.global_name}')

    for key, value in config.defines.items():
        if not is_identifier_path(key):
            logger.debug("Skipping define with non-identifier key: %s", key)
            continue
        args.append(f'--define:{key}={value}')

    if inject is not None:
        args.append(f'--inject:{inject}')

    args.append('--log-level=warning')
    return args


def _relative_to(path: Path, root: Path) -> Optional[Path]:
    try:
        return path.relative_to(root)
    except ValueError:
        return None


# =============================================================================
# STAGING
# =============================================================================

def stage_tree(root: Path, staging: Path, replacements: Dict[Path, bytes]) -> None:
    """
    Mirror `root` into `staging`, substituting transformed files.

    Only the directories leading to a replaced file are created for real;
    every other entry is a symlink back into `root`. Symlinks that point
    inside `root` (pnpm's node_modules/<pkg> links) are re-pointed at the
    staged location, so packages reached through them see the replacements.

    Args:
        root: Project root
        staging: Empty directory to build the mirror in
        replacements: Path relative to root -> new contents
    """
    real_root = root.resolve()
    materialized = {Path('.')}
    for rel_path in replacements:
        materialized.update(rel_path.parents)

    for rel_dir in sorted(materialized, key=lambda p: len(p.parts)):
        (staging / rel_dir).mkdir(parents=True, exist_ok=True)
        for child in (root / rel_dir).iterdir():
            rel_child = rel_dir / child.name
            if rel_child in materialized:
                continue
            target = staging / rel_child
            if rel_child in replacements:
                target.write_bytes(replacements[rel_child])
                continue
            link = child
            if child.is_symlink():
                linked = _relative_to(child.resolve(), real_root)
                if linked is not None:
                    link = staging / linked
            target.symlink_to(link, target_is_directory=child.is_dir())


def restore_source_paths(source_map: OutputFile, staging: Path, root: Path) -> OutputFile:
    """Point source map `sources` entries back from the staging tree into the project."""
    data = json.loads(source_map.text)
    out_dir = source_map.path.parent
    staging_dirs = {str(staging), str(staging.resolve())}

    sources = []
    for source in data.get('sources', []):
        absolute = os.path.normpath(os.path.join(out_dir, source))
        for staging_dir in staging_dirs:
            if absolute == staging_dir or absolute.startswith(staging_dir + os.sep):
                original = root / os.path.relpath(absolute, staging_dir)
                source = Path(os.path.relpath(original, out_dir)).as_posix()
                break
        sources.append(source)

    data['sources'] = sources
    return OutputFile(source_map.path, json.dumps(data, separators=(',', ':')).encode('utf-8'))


class ModuleBundler:
    """Bundles entry points of one project with esbuild."""

    def __init__(self, root: Path, service: Optional[EsbuildService] = None):
        """
        Args:
            root: Project root; esbuild runs here and load hooks apply below it
            service: esbuild runner (defaults to the executable found for root)
        """
        self.root = Path(root).resolve()
        self.service = service or EsbuildService(root=self.root)

    def bundle(self, entry: Path, outfile: Path, config: BuildConfig) -> BundleResult:
        """
        Bundle one entry point.

        Args:
            entry: Entry point module
            outfile: Bundle output path (a .map file is written beside it
                when source maps are enabled)
            config: Build options

        Returns:
            BundleResult with the final bundle text

        Raises:
            BundleError: If esbuild fails or produces no JS output
        """
        entry = Path(entry).resolve()
        outfile = Path(outfile).resolve()
        outfile.parent.mkdir(parents=True, exist_ok=True)

        # Stale outputs must not be mistaken for this run's
        for stale in (outfile, outfile.with_name(outfile.name + '.map')):
            if stale.exists():
                stale.unlink()

        logger.info("Bundling %s -> %s", entry.name, outfile.name)

        with tempfile.TemporaryDirectory(prefix='formatbuild-') as scratch_dir:
            scratch = Path(scratch_dir)

            inject = None
            if config.inject:
                inject = scratch / 'injected-constants.js'
                inject.write_text(render_constants_module(config.inject), encoding='utf-8')

            replacements = self._load_replacements(entry, config, scratch)

            staging = None
            cwd = self.root
            build_entry = entry
            if replacements:
                staging = scratch / 'stage'
                stage_tree(self.root, staging, replacements)
                cwd = staging
                rel_entry = _relative_to(entry, self.root)
                if rel_entry is not None:
                    build_entry = staging / rel_entry
                logger.debug("Staged %d transformed file(s)", len(replacements))

            args = build_arguments(build_entry, outfile, config, inject)
            if staging is not None:
                args.append('--preserve-symlinks')
            self.service.run(args, cwd)

            outputs = self._read_outputs(outfile)
            if staging is not None:
                outputs = [
                    restore_source_paths(output, staging, self.root)
                    if output.path.suffix == '.map' else output
                    for output in outputs
                ]

        for plugin in config.plugins:
            replaced = plugin.on_end(outputs)
            if replaced is not None:
                outputs = replaced

        text = None
        for output in outputs:
            output.path.write_bytes(output.contents)
            if output.path.suffix == '.js':
                text = output.text

        if text is None:
            raise BundleError(f"No JS output for {entry}")

        return BundleResult(text=text, files=outputs)

    def _read_outputs(self, outfile: Path) -> List[OutputFile]:
        outputs = []
        for path in (outfile, outfile.with_name(outfile.name + '.map')):
            if path.exists():
                outputs.append(OutputFile(path, path.read_bytes()))
        return outputs

    def _load_replacements(self, entry: Path, config: BuildConfig,
                           scratch: Path) -> Dict[Path, bytes]:
        """
        Run the load hooks over every file the bundle reads.

        A scan pass with --metafile lists the inputs; files changed by at
        least one hook are returned keyed by their path relative to root.
        """
        hooked = [plugin for plugin in config.plugins if plugin.load_filter is not None]
        if not hooked:
            return {}

        replacements = {}
        for rel_path in self._scan_inputs(entry, config, scratch, hooked):
            path = self.root / rel_path
            original = path.read_bytes()
            contents = original
            for plugin in hooked:
                if plugin.matches(path):
                    loaded = plugin.on_load(path, contents)
                    if loaded is not None:
                        contents = loaded
            if contents != original:
                replacements[rel_path] = contents
        return replacements

    def _scan_inputs(self, entry: Path, config: BuildConfig, scratch: Path,
                     hooked: List[BundlerPlugin]) -> List[Path]:
        scan_dir = scratch / 'scan'
        scan_dir.mkdir()
        metafile = scan_dir / 'meta.json'

        scan_config = config.specialize(
            minify=False, sourcemap=None, banner=None, footer=None, inject={},
        )
        args = build_arguments(entry, scan_dir / 'scan.js', scan_config)
        args.append(f'--metafile={metafile}')
        self.service.run(args, self.root)

        with open(metafile, 'r', encoding='utf-8') as f:
            meta = json.load(f)

        inputs = []
        for name in meta.get('inputs', {}):
            rel_path = Path(os.path.normpath(name))
            # Namespaced, zipped or outside-root inputs cannot be staged
            stageable = (
                not rel_path.is_absolute()
                and rel_path.parts[:1] != ('..',)
                and (self.root / rel_path).is_file()
            )
            if stageable:
                inputs.append(rel_path)
            elif any(plugin.matches(Path(name)) for plugin in hooked):
                logger.info("Load hooks not applied to %s (not stageable below %s)",
                            name, self.root)
        return inputs
