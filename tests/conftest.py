"""
Shared fixtures: a fake esbuild executable and a minimal story format project.
"""

import json
import os
import re
import subprocess
from pathlib import Path

import pytest

from formatbuild.errors import BundleError
from formatbuild.esbuild_service import EsbuildService

IMPORT_PATTERN = re.compile(r'''import\s+["']([^"']+)["']''')
EXPORT_CONST = re.compile(r'^export const ', re.MULTILINE)


class FakeEsbuild(EsbuildService):
    """
    Emulates the esbuild executable closely enough for the pipeline.

    Entry points are "bundled" by wrapping their text (plus injected
    constants and imported stylesheets) in an IIFE. Side-effect imports of
    the form `import "./x"` are followed one level deep.
    """

    def __init__(self, fail_on=(), no_output=()):
        super().__init__(command=['esbuild-fake'])
        self.calls = []
        self.fail_on = set(fail_on)
        self.no_output = set(no_output)

    def run(self, args, cwd):
        self.calls.append((list(args), Path(cwd)))
        options = self._parse(args)
        entry = Path(cwd) / options['entry']

        if entry.name in self.fail_on:
            raise BundleError(f"esbuild failed with return code 1:\n✘ [ERROR] fake failure in {entry.name}")

        inputs = [entry]
        for spec in IMPORT_PATTERN.findall(entry.read_text(encoding='utf-8')):
            inputs.append(Path(os.path.normpath(entry.parent / spec)))

        outfile = Path(options['outfile'])
        outfile.parent.mkdir(parents=True, exist_ok=True)

        if 'metafile' in options:
            meta = {'inputs': {os.path.relpath(p, cwd): {} for p in inputs}}
            Path(options['metafile']).write_text(json.dumps(meta), encoding='utf-8')
            outfile.write_text('', encoding='utf-8')
            return subprocess.CompletedProcess(args, 0, '', '')

        if entry.name in self.no_output:
            return subprocess.CompletedProcess(args, 0, '', '')

        body = []
        for inject in options['inject']:
            body.append(EXPORT_CONST.sub('const ', Path(inject).read_text(encoding='utf-8')))
        for path in inputs[1:]:
            if path.suffix == '.css':
                body.append(f'var css={json.dumps(path.read_text(encoding="utf-8"))};')
        body.append(entry.read_text(encoding='utf-8'))

        code = '(()=>{' + '\n'.join(body) + '})();'
        if options.get('global-name'):
            code = f"var {options['global-name']}={code}"

        lines = []
        if options.get('banner'):
            lines.append(options['banner'])
        lines.append(code)
        if options.get('footer'):
            lines.append(options['footer'])
        if options.get('sourcemap') == 'linked':
            lines.append(f'//# sourceMappingURL={outfile.name}.map')
            source_map = {
                'version': 3,
                'sources': [os.path.relpath(p, outfile.parent) for p in inputs],
                'mappings': '',
            }
            outfile.with_name(outfile.name + '.map').write_text(json.dumps(source_map), encoding='utf-8')

        outfile.write_text('\n'.join(lines) + '\n', encoding='utf-8')
        return subprocess.CompletedProcess(args, 0, '', '')

    @staticmethod
    def _parse(args):
        options = {'defines': {}, 'inject': [], 'externals': []}
        for arg in args:
            if not arg.startswith('--'):
                options['entry'] = arg
            elif arg.startswith('--define:'):
                key, _, value = arg[len('--define:'):].partition('=')
                options['defines'][key] = value
            elif arg.startswith('--inject:'):
                options['inject'].append(arg[len('--inject:'):])
            elif arg.startswith('--external:'):
                options['externals'].append(arg[len('--external:'):])
            elif arg.startswith('--banner:js='):
                options['banner'] = arg[len('--banner:js='):]
            elif arg.startswith('--footer:js='):
                options['footer'] = arg[len('--footer:js='):]
            elif '=' in arg:
                key, _, value = arg[2:].partition('=')
                options[key] = value
            else:
                options[arg[2:]] = True
        return options

    def calls_for(self, entry_name, scans=False):
        """Parsed options of every call bundling `entry_name`."""
        result = []
        for args, _ in self.calls:
            options = self._parse(args)
            if Path(options['entry']).name != entry_name:
                continue
            if ('metafile' in options) == scans:
                result.append(options)
        return result


@pytest.fixture
def fake_esbuild():
    return FakeEsbuild()


PACKAGE_JSON = {
    'name': 'test-format',
    'title': 'Test Format',
    'version': '1.2.3',
    'author': 'Test Author',
    'description': 'A story format used in tests',
    'icon': 'assets/logo.svg',
    'license': 'MIT',
    'repository': {'url': 'https://example.com/test-format.git'},
    'runtimes': {'twine': '^2.4.0'},
    'dependencies': {'core-js': '^3.0.0'},
    'devDependencies': {'esbuild': '^0.19.0'},
    'eslintConfig': {'root': True},
}

PLAYER_HTML = """<!DOCTYPE html>
<html>
  <head>
    <title>{{STORY_NAME}}</title>
  </head>
  <body>
    <div id="output"></div>
    {{STORY_DATA}}
    <script src="../../build/player.js"></script>
  </body>
</html>
"""


@pytest.fixture
def story_project(tmp_path):
    """Minimal story format project without its own format entry."""
    root = tmp_path / 'project'
    (root / 'assets').mkdir(parents=True)
    (root / 'src' / 'editor').mkdir(parents=True)
    (root / 'src' / 'player').mkdir(parents=True)

    (root / 'package.json').write_text(json.dumps(PACKAGE_JSON, indent=2), encoding='utf-8')
    (root / 'assets' / 'logo.svg').write_text('<svg xmlns="http://www.w3.org/2000/svg"></svg>', encoding='utf-8')
    (root / 'src' / 'editor' / 'hydrate.ts').write_text(
        'import "./editor.css";\nexport const twine = {};\n', encoding='utf-8'
    )
    (root / 'src' / 'editor' / 'editor.css').write_text(
        '.cm-link  {\n  color : red ;\n}\n', encoding='utf-8'
    )
    (root / 'src' / 'player' / 'index.ts').write_text('document.title = "player";\n', encoding='utf-8')
    (root / 'src' / 'player' / 'index.html').write_text(PLAYER_HTML, encoding='utf-8')
    return root
