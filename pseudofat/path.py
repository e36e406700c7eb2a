# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

"""
Canonical path handling for the namespace. Paths are plain :class:`str`
values; canonical paths are absolute, contain no runs of separators, and (for
directories) end with a separator so that a simple prefix test distinguishes a
directory's descendants from its siblings (``/a/`` is a prefix of ``/a/b`` but
not of ``/ab``).
"""

import re

sep = '/'
root = sep

_sep_run = re.compile(f'{sep}{{2,}}')


def normalize(cursor, path):
    """
    Resolve *path* against *cursor* (the current directory, which must be
    absolute) and return the result with runs of separators collapsed. If
    *path* starts with a separator it is absolute and *cursor* is ignored.

    The special components "." and ".." are left alone here; see
    :func:`resolve_dots`. The result is idempotent, i.e.
    ``normalize(c, normalize(c, p)) == normalize(c, p)``.
    """
    if not path.startswith(sep):
        path = cursor + sep + path
    return _sep_run.sub(sep, path)


def get_parts(path):
    """
    Split the absolute *path* into its non-empty components.
    """
    return tuple(part for part in path.split(sep) if part)


def file_key(path):
    """
    Return the canonical form of *path* for a file: no trailing separator.
    """
    if path == root:
        return root
    return path.rstrip(sep)


def dir_key(path):
    """
    Return the canonical form of *path* for a directory: exactly one trailing
    separator.
    """
    return file_key(path).rstrip(sep) + sep


def join(directory, name):
    """
    Return the canonical path of *name* within *directory*.
    """
    return dir_key(directory) + name


def basename(path):
    """
    Return the final component of *path*, or the empty string for the root.
    """
    parts = get_parts(path)
    return parts[-1] if parts else ''


def parent(path):
    """
    Return the canonical directory form of the parent of *path*. The parent
    of the root is the root.
    """
    parts = get_parts(path)
    return dir_key(sep + sep.join(parts[:-1]))


def resolve_dots(path):
    """
    Collapse "." and ".." components in the absolute *path*. A ".." at the
    root is ignored, so the result is always a valid absolute path. The result
    is in canonical directory form.
    """
    parts = []
    for part in get_parts(path):
        if part == '.':
            continue
        elif part == '..':
            if parts:
                parts.pop()
        else:
            parts.append(part)
    return dir_key(sep + sep.join(parts))


def is_within(path, directory):
    """
    Returns :data:`True` if *path* is *directory* itself, or lies anywhere
    beneath it.
    """
    return dir_key(path).startswith(dir_key(directory))


def validate_name(path):
    """
    Raise :exc:`ValueError` if the final component of *path* is not a valid
    name for a new entry.
    """
    name = basename(path)
    if name in ('', '.', '..'):
        raise ValueError(f'invalid name {path!r}')
    return name
