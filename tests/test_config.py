#!/usr/bin/env python3
"""
Tests for formatbuild/config.py
"""

import dataclasses
import json

import pytest

from formatbuild.config import BuildConfig, ProjectLayout, load_project_config


class TestBuildConfig:
    """BuildConfig stays immutable, mappings included."""

    def test_mappings_are_read_only(self):
        config = BuildConfig(defines={'PACKAGE.name': '"x"'}, inject={'SOURCE': '<p></p>'})

        with pytest.raises(TypeError):
            config.defines['PACKAGE.name'] = '"y"'
        with pytest.raises(TypeError):
            config.loaders['.woff2'] = 'dataurl'
        with pytest.raises(TypeError):
            config.inject['HYDRATE'] = ''

    def test_fields_cannot_be_reassigned(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            BuildConfig().minify = False

    def test_caller_dict_not_shared(self):
        defines = {'PACKAGE.name': '"x"'}
        config = BuildConfig(defines=defines)

        defines['PACKAGE.version'] = '"1"'

        assert dict(config.defines) == {'PACKAGE.name': '"x"'}

    def test_specialize_keeps_original(self):
        base = BuildConfig.for_modules({'PACKAGE.name': '"x"'})

        final = base.specialize(sourcemap=None, inject={'SOURCE': 's'})

        assert base.sourcemap == 'linked'
        assert dict(base.inject) == {}
        assert dict(final.inject) == {'SOURCE': 's'}
        with pytest.raises(TypeError):
            final.inject['SOURCE'] = 't'
        assert final.plugins == base.plugins


def test_project_layout(tmp_path):
    layout = ProjectLayout.from_root(tmp_path)

    assert layout.out_dir == tmp_path.resolve() / 'build'
    assert layout.editor_entry == tmp_path.resolve() / 'src' / 'editor' / 'hydrate.ts'
    assert layout.format_outfile.name == 'format.js'
    assert ProjectLayout.from_root(tmp_path, tmp_path / 'dist').player_outfile.parent.name == 'dist'


def test_load_project_config_rejects_non_object(tmp_path):
    path = tmp_path / 'package.json'
    path.write_text(json.dumps(['not', 'an', 'object']))

    with pytest.raises(ValueError, match='JSON object'):
        load_project_config(path)
