"""
Path remapping and relative path resolution.

Tiled stores references relative to the document that contains them
("../tilesets/terrain.tsx"). Games rarely keep assets in that exact layout,
so a path map can redirect references before anything is fetched:

    rules = [
        PathMapRule('terrain.png', '/assets/images/terrain.png'),
        PathMapRule(re.compile(r'[^/]+\\.tsx$'), '/assets/tilesets/[match]'),
    ]

The first rule that matches anywhere in the reference wins and replaces the
whole path. A regular expression output may contain "[match]", which is
replaced by the matched text.
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence, Union


MATCH_TOKEN = '[match]'

_FILENAME_RE = re.compile(r'[^/\\&?]+\.\w{2,4}(?=([#?&].*$|$))', re.IGNORECASE)


@dataclass
class PathMapRule:
    """One remapping rule: a substring or compiled regex, and its output."""
    path: Union[str, Pattern]
    output: str

    def match(self, candidate: str) -> Optional[str]:
        """Return the remapped path, or None when this rule does not apply."""
        if isinstance(self.path, str):
            if self.path in candidate:
                return self.output
            return None

        found = self.path.search(candidate)
        if found:
            return self.output.replace(MATCH_TOKEN, found.group(0))
        return None


PathMap = Sequence[PathMapRule]


def map_path(input_path: str, path_map: Optional[PathMap]) -> str:
    """Apply the first matching rule, or return input_path untouched."""
    for rule in path_map or ():
        mapped = rule.match(input_path)
        if mapped is not None:
            return mapped
    return input_path


def path_in_map(input_path: str, path_map: Optional[PathMap]) -> bool:
    return any(rule.match(input_path) is not None for rule in path_map or ())


def path_relative_to_base(base_path: str, relative: str,
                          path_map: Optional[PathMap] = None) -> str:
    """
    Resolve a reference found inside the document at base_path.

    Parameters:
    -----------
    base_path : str
        Path of the referencing document (map, tileset or template)
    relative : str
        The reference as written in that document
    path_map : list of PathMapRule, optional
        Remapping rules consulted before anything else

    Examples:
    ---------
    path_relative_to_base('./base/here/file.tmx', 'tiles/a.tsx')
        -> './base/here/tiles/a.tsx'
    path_relative_to_base('./base/here/file.tmx', '/abs/a.tsx')
        -> '/abs/a.tsx'
    """
    if path_in_map(relative, path_map):
        return map_path(relative, path_map)

    if relative.startswith('/'):
        return relative

    origin = base_path.split('/')
    # a last segment with a dot is the document itself, not a directory
    if origin and '.' in origin[-1]:
        origin.pop()
    return normalize_path('/'.join(origin + relative.split('/')))


def normalize_path(input_path: str) -> str:
    """
    Collapse '.' and 'dir/..' segments so one file always has one cache key.

    A leading './' and leading '..' segments are kept, empty segments
    (the '//' of a URL scheme) are left alone.

    'maps/../templates/../tilesets/t.tsj' -> 'tilesets/t.tsj'
    './maps/./level.tmx'                 -> './maps/level.tmx'
    """
    segments = input_path.split('/')
    out = []
    for index, segment in enumerate(segments):
        if segment == '.' and index > 0:
            continue
        if segment == '..' and out and out[-1] not in ('..', '.', '') and not out[-1].endswith(':'):
            out.pop()
            continue
        out.append(segment)
    return '/'.join(out)


def filename_from_path(input_path: str) -> str:
    """
    Extract the file name from a path or URL.

    'http://host/maps/level1.tmx?v=2' -> 'level1.tmx'
    """
    found = _FILENAME_RE.search(input_path)
    if found:
        return found.group(0)
    raise ValueError(f"Could not locate filename from path: {input_path}")


def extension_of(input_path: str) -> str:
    """Lowercase extension without the dot, '' when there is none."""
    try:
        name = filename_from_path(input_path)
    except ValueError:
        return ''
    return name.rsplit('.', 1)[-1].lower()
