#!/usr/bin/env python3
"""
Builds a small story format with the real esbuild executable.

Skipped unless esbuild is on PATH.
"""

import json
import shutil
import subprocess

import pytest

from formatbuild.esbuild_service import EsbuildService
from formatbuild.pipeline import run_build

pytestmark = pytest.mark.skipif(shutil.which('esbuild') is None, reason='esbuild not on PATH')


@pytest.fixture
def real_project(story_project):
    (story_project / 'src' / 'editor' / 'hydrate.ts').write_text(
        'import css from "./editor.css";\n'
        'export const twine = {"^2.4.0": {codeMirror: {mode: () => ({token: () => null}), css}}};\n',
        encoding='utf-8',
    )
    return story_project


def test_real_build(real_project):
    artifact = run_build(real_project, service=EsbuildService([shutil.which('esbuild')]))

    names = sorted(p.name for p in artifact.parent.iterdir())
    assert names == ['format.js', 'icon.svg']

    # Evaluate the artifact with node when available
    node = shutil.which('node')
    if node is None:
        return
    script = (
        'let format;'
        'globalThis.window = {storyFormat: f => { format = f; }};'
        f'require({json.dumps(str(artifact))});'
        'console.log(JSON.stringify({name: format.name, version: format.version,'
        ' image: format.image, hydrate: typeof format.hydrate, source: typeof format.source}));'
    )
    result = subprocess.run([node, '-e', script], capture_output=True, text=True, check=True)
    registered = json.loads(result.stdout)

    assert registered == {
        'name': 'Test Format',
        'version': '1.2.3',
        'image': 'icon.svg',
        'hydrate': 'string',
        'source': 'string',
    }
