"""Slug helper used for human-readable snapshot file name prefixes."""

import re

_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z\d]+)")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str | None) -> str:
    """Turn ``value`` into a lower-case, dash separated slug.

    camelCase and PascalCase words are split before slugifying, so
    ``GetItem`` becomes ``get-item`` rather than ``getitem``.
    """
    if not value:
        return ""
    text = _ACRONYM_BOUNDARY.sub(r"\1-\2", str(value))
    text = _CAMEL_BOUNDARY.sub(r"\1-\2", text)
    return _NON_ALNUM.sub("-", text.strip().lower()).strip("-")
