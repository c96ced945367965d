"""
Story format build pipeline.

Packages a Twine story format (editor extensions, player script, player
HTML shell) into a single self-contained format.js.

Modules:
- flatten: Flatten package.json into compile-time constants
- plugins: Bundler load/end hooks (replace, null loader, CSS minify, source map URLs)
- bundler: esbuild wrapper with the story format policy
- html_packer: Inline and minify the player HTML
- codegen: Generated JS (injected constants, namespace footer, format entry)
- pipeline: The multi-phase build
- cli: Command line entry point
"""

__version__ = "1.0.0"
