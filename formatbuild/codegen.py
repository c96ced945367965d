"""
Generated JavaScript.

Renders the small JS sources the build needs beyond the project's own
entry points:

- the injected-constants module carrying large string constants
- the footer publishing the editor bundle's exports on the host namespace
- a default format entry point for projects that do not ship one
"""

import re
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple

from jinja2 import Environment, FileSystemLoader

from .flatten import serialize_literal

TEMPLATE_DIR = Path(__file__).parent / 'templates'

IDENTIFIER = re.compile(r'^[A-Za-z_$][A-Za-z0-9_$]*$')

# Registration field -> candidate config keys, first present one wins
REGISTRATION_FIELDS: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ('name', ('title', 'name')),
    ('version', ('version',)),
    ('author', ('author', 'author.name')),
    ('description', ('description',)),
    ('url', ('repository.url', 'repository', 'homepage')),
    ('license', ('license',)),
    ('image', ('icon',)),
)

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def is_identifier_path(path: str) -> bool:
    """True if `path` is a dotted chain of JavaScript identifiers."""
    return all(IDENTIFIER.match(part) for part in path.split('.'))


def render_constants_module(constants: Mapping[str, str]) -> str:
    """
    Render an ES module exporting each string constant.

    Args:
        constants: Identifier -> raw string value

    Raises:
        ValueError: If a name is not a plain identifier
    """
    for name in constants:
        if not IDENTIFIER.match(name):
            raise ValueError(f"Injected constant name must be an identifier: {name!r}")

    items = [(name, serialize_literal(value)) for name, value in sorted(constants.items())]
    return _env.get_template('constants.js.jinja2').render(constants=items)


def host_namespace_footer(global_name: str, namespace: str) -> str:
    """
    Statement publishing a bundle's named exports on the host namespace.

    Appended after the bundle, so no mapped code moves and the source map
    stays valid.
    """
    if not IDENTIFIER.match(global_name):
        raise ValueError(f"Global name must be an identifier: {global_name!r}")
    target = namespace[len('this.'):] if namespace.startswith('this.') else namespace
    if not is_identifier_path(target):
        raise ValueError(f"Invalid namespace path: {namespace!r}")
    return f'{namespace}={global_name};'


def _first_present(constants: Mapping[str, str], prefix: str,
                   keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        if f'{prefix}{key}' in constants:
            return f'{prefix}{key}'
    return None


def render_format_entry(constants: Mapping[str, str], prefix: str,
                        namespace: str) -> str:
    """
    Render the default story format entry point.

    Only config keys present in the ConstantMap are referenced, so every
    reference is replaced at build time.

    Args:
        constants: Flattened project configuration
        prefix: Prefix used when flattening (e.g. 'PACKAGE.')
        namespace: Host namespace the editor bundle publishes to
    """
    fields = []
    for field, keys in REGISTRATION_FIELDS:
        expression = _first_present(constants, prefix, keys)
        if expression:
            fields.append((field, expression))

    name_expression = _first_present(constants, prefix, ('name',))
    mode_expression = _first_present(constants, prefix, ('runtimes.twine',))
    if not name_expression:
        mode_expression = None

    target = namespace[len('this.'):] if namespace.startswith('this.') else namespace

    return _env.get_template('format.js.jinja2').render(
        prefix=prefix,
        fields=fields,
        name_expression=name_expression,
        mode_expression=mode_expression,
        namespace=target,
    )
