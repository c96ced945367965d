#!/usr/bin/env python3
"""
Story Format Build

Builds build/format.js from the project's editor extensions, player script
and player HTML.

Usage:
    python -m formatbuild [SOURCE_MAP_PREFIX] [--project-root DIR] [--out-dir DIR]

SOURCE_MAP_PREFIX is an absolute URL prepended to source map references of
the intermediate bundles; without it the URLs stay relative.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_EXCLUDED_KEYS
from .errors import BuildError
from .esbuild_service import EsbuildService, find_esbuild
from .pipeline import run_build


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Build a self-contained Twine story format bundle'
    )
    parser.add_argument('source_map_prefix', nargs='?', default=None,
                        help='Absolute URL prefix for source map references')
    parser.add_argument('--project-root', type=Path, default=Path.cwd(),
                        help='Project directory containing package.json (default: cwd)')
    parser.add_argument('--out-dir', type=Path, default=None,
                        help='Output directory (default: <project-root>/build)')
    parser.add_argument('--esbuild', default=None,
                        help='Path to the esbuild executable')
    parser.add_argument('--exclude-key', dest='exclude_keys', action='append', default=None,
                        metavar='KEY',
                        help='Config key to leave out of the bundle constants '
                             f'(repeatable; default: {", ".join(DEFAULT_EXCLUDED_KEYS)})')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the story format build."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    )
    logging.captureWarnings(True)

    root = args.project_root.resolve()
    exclude_keys = args.exclude_keys if args.exclude_keys is not None else DEFAULT_EXCLUDED_KEYS

    try:
        print("\n" + "=" * 80, file=sys.stderr)
        print(f"STORY FORMAT BUILD - {root}", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        service = EsbuildService(find_esbuild(root, args.esbuild))
        artifact = run_build(
            root,
            out_dir=args.out_dir,
            source_map_prefix=args.source_map_prefix,
            exclude_keys=exclude_keys,
            service=service,
        )

        print("\n" + "=" * 80, file=sys.stderr)
        print("=== STORY FORMAT BUILD COMPLETE ===", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print(f"Artifact: {artifact} ({artifact.stat().st_size:,} bytes)", file=sys.stderr)
        print("=" * 80 + "\n", file=sys.stderr)
        return 0

    except BuildError as e:
        print(f"\n❌ Build failed: {e}", file=sys.stderr)
        return 1

    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        return 1

    except Exception as e:
        print(f"\n❌ Unexpected error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
