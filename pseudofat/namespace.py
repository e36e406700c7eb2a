# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import os
import errno
import logging
from enum import Enum
from collections import namedtuple

from . import path as pathlib
from .table import CorruptedChain


class Kind(Enum):
    """
    The kind of a namespace :class:`Entry`. The values are the labels used
    when listing directories.
    """
    FILE = 'FILE'
    DIRECTORY = 'DIR'


class Entry(namedtuple('Entry', (
        'path', 'kind', 'size', 'start_cluster', 'end_cluster'))):
    """
    A :func:`~collections.namedtuple` representing the meta-data of a file or
    directory in the namespace.

    The *path* is canonical: absolute, and (for directories) ending with a
    separator. Directories never own clusters and always have *size* 0. Files
    of *size* 0 own no clusters; larger files own the chain from
    *start_cluster* to *end_cluster* in the owning
    :class:`~pseudofat.table.ClusterTable`. Both are :data:`None` when no
    clusters are owned.
    """
    __slots__ = ()

    @classmethod
    def directory(cls, path):
        return cls(pathlib.dir_key(path), Kind.DIRECTORY, 0, None, None)

    @classmethod
    def file(cls, path, size=0, start_cluster=None, end_cluster=None):
        return cls(
            pathlib.file_key(path), Kind.FILE, size, start_cluster,
            end_cluster)

    @property
    def is_dir(self):
        return self.kind is Kind.DIRECTORY

    @property
    def name(self):
        return pathlib.basename(self.path)


ROOT = Entry.directory(pathlib.root)


class Description(namedtuple('Description', ('path', 'kind', 'clusters'))):
    """
    The result of :meth:`NamespaceStore.describe`: the canonical *path* of an
    entry, its *kind*, and the :class:`tuple` of clusters in its chain (which
    is empty for directories and empty files).
    """
    __slots__ = ()


class NamespaceStore:
    """
    Emulates a directory tree over a flat, ordered table of :class:`Entry`
    instances keyed by canonical path, with at most *max_entries* entries. The
    root directory is implicit; it always exists and is never stored.

    File data lives in clusters allocated from *table* (a
    :class:`~pseudofat.table.ClusterTable`) and stored in *image* (a
    :class:`~pseudofat.image.BackingImage`). Entries merely refer to their
    chains; removing an entry always releases its chain first.

    The store also owns the current directory "cursor" against which relative
    paths are resolved (see :meth:`change_dir` and :meth:`pwd`).
    """
    logger = logging.getLogger('pseudofat')

    def __init__(self, table, image, max_entries=100):
        if max_entries < 1:
            raise ValueError(f'invalid max_entries {max_entries}')
        self._table = table
        self._image = image
        self._max = max_entries
        self._entries = {}
        self._cursor = pathlib.root

    def __repr__(self):
        return (
            f'<{self.__class__.__name__} entries={len(self)} '
            f'cursor={self._cursor!r}>')

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries.values())

    @property
    def max_entries(self):
        return self._max

    def clear(self):
        """
        Remove every entry, without releasing chains (the caller is expected to
        reset the cluster table too), and return the cursor to the root.
        """
        self._entries.clear()
        self._cursor = pathlib.root

    def resolve(self, path):
        """
        Resolve *path* against the cursor, returning the absolute, normalized
        result.
        """
        return pathlib.normalize(self._cursor, path)

    def _lookup(self, abs_path):
        if abs_path == pathlib.root:
            return ROOT
        key = pathlib.file_key(abs_path)
        try:
            return self._entries[key]
        except KeyError:
            return self._entries.get(pathlib.dir_key(key))

    def find(self, path):
        """
        Return the :class:`Entry` for *path* (resolved against the cursor), or
        :data:`None` if it does not exist. Directories are found with or
        without a trailing separator.
        """
        return self._lookup(self.resolve(path))

    def _must_exist(self, path):
        entry = self.find(path)
        if entry is None:
            raise FileNotFoundError(
                errno.ENOENT, os.strerror(errno.ENOENT), path)
        return entry

    def _must_be_dir(self, path):
        entry = self._must_exist(path)
        if not entry.is_dir:
            raise NotADirectoryError(
                errno.ENOTDIR, os.strerror(errno.ENOTDIR), path)
        return entry

    def _must_not_be_dir(self, path):
        entry = self._must_exist(path)
        if entry.is_dir:
            raise IsADirectoryError(
                errno.EISDIR, os.strerror(errno.EISDIR), path)
        return entry

    def _must_not_exist(self, abs_path):
        if self._lookup(abs_path) is not None:
            raise FileExistsError(
                errno.EEXIST, os.strerror(errno.EEXIST), abs_path)

    def _must_have_room(self, count=1):
        if len(self._entries) + count > self._max:
            raise OSError(errno.ENFILE, 'Filesystem is full')

    def check_new(self, abs_path, count=1):
        """
        Raise the appropriate exception if *abs_path* cannot be introduced as
        a new name: it must be a valid name, must not exist (as either kind of
        entry), its parent must be an existing directory, and the table must
        have room for *count* more entries.
        """
        self._must_not_exist(abs_path)
        pathlib.validate_name(abs_path)
        self._must_be_dir(pathlib.parent(abs_path))
        self._must_have_room(count)

    def _descendants(self, entry):
        # A snapshot of the keys beneath the directory entry, in table order
        return [
            key for key in self._entries
            if key.startswith(entry.path) and key != entry.path
        ]

    def insert(self, entry):
        """
        Insert the pre-constructed *entry*. The usual checks for a new name are
        applied; the caller is responsible for any chain the entry refers to.
        """
        self.check_new(entry.path)
        self._entries[entry.path] = entry
        return entry

    def create(self, path, kind=Kind.FILE):
        """
        Create a new, empty entry of *kind* at *path*.

        Raises :exc:`FileExistsError` if the name is already in use (by either
        kind of entry), :exc:`FileNotFoundError` or :exc:`NotADirectoryError`
        if the parent directory is missing or is a file, and :exc:`OSError`
        with code ENFILE if the table is full.
        """
        abs_path = self.resolve(path)
        if kind is Kind.DIRECTORY:
            entry = Entry.directory(abs_path)
        else:
            entry = Entry.file(abs_path)
        return self.insert(entry)

    def list(self, path=None):
        """
        Return a :class:`list` of (name, kind) tuples for the directory at
        *path* (or the cursor if *path* is :data:`None`).

        Every entry beneath the directory is listed (not merely its immediate
        children) with the directory's prefix stripped, so a nested entry
        appears as "sub/name". Entries are listed in the order they were
        created.
        """
        entry = self._must_be_dir(self._cursor if path is None else path)
        prefix = entry.path
        return [
            (pathlib.file_key(key[len(prefix):]), child.kind)
            for key, child in self._entries.items()
            if key.startswith(prefix) and len(key) > len(prefix)
        ]

    def remove_file(self, path):
        """
        Remove the file at *path*, releasing its chain back to the cluster
        table. Raises :exc:`FileNotFoundError` or :exc:`IsADirectoryError` as
        appropriate.
        """
        entry = self._must_not_be_dir(path)
        self._table.free(entry.start_cluster)
        del self._entries[entry.path]
        self.logger.info('Removed %s', entry.path)

    def remove_directory(self, path, recursive=True):
        """
        Remove the directory at *path*, and (if *recursive* is :data:`True`,
        the default) everything beneath it. Files beneath the directory
        release their chains before their entries are removed.

        If *recursive* is :data:`False` and the directory is not empty,
        :exc:`OSError` with code ENOTEMPTY is raised. If the cursor lies within
        the removed tree, it moves to the removed directory's parent.
        """
        entry = self._must_be_dir(path)
        if entry is ROOT:
            raise OSError(errno.EBUSY, 'Cannot remove the root directory')
        to_remove = self._descendants(entry)
        if to_remove and not recursive:
            raise OSError(
                errno.ENOTEMPTY, os.strerror(errno.ENOTEMPTY), entry.path)
        for key in to_remove:
            child = self._entries.pop(key)
            if not child.is_dir:
                self._table.free(child.start_cluster)
        del self._entries[entry.path]
        if pathlib.is_within(self._cursor, entry.path):
            self._cursor = pathlib.parent(entry.path)
        self.logger.info(
            'Removed %s and %d entries beneath it', entry.path, len(to_remove))

    def _target(self, source, dst):
        # Resolve the destination of a copy or move of source to dst; if dst is
        # an existing directory, the source's name is appended to it
        target = self.resolve(dst)
        existing = self._lookup(target)
        if existing is not None and existing.is_dir:
            target = pathlib.join(existing.path, source.name)
        if source.is_dir:
            if pathlib.is_within(target, source.path):
                raise OSError(
                    errno.EINVAL,
                    f'Cannot copy or move {source.path} into itself', target)
            return pathlib.dir_key(target)
        return pathlib.file_key(target)

    def copy(self, src, dst):
        """
        Copy the file or directory at *src* to *dst*. If *dst* is an existing
        directory, the copy is placed within it under the name of *src*.

        Files are given a newly allocated chain and their data is copied
        cluster by cluster. Directories are copied with everything beneath
        them. The number of entries and clusters required are checked before
        anything is changed, so a failed copy leaves the store as it was.
        """
        source = self._must_exist(src)
        if source is ROOT:
            raise OSError(errno.EINVAL, 'Cannot copy the root directory')
        target = self._target(source, dst)
        if not source.is_dir:
            self.check_new(target)
            self._entries[target] = self._copy_file(source, target)
        else:
            to_copy = [
                key for key in self._descendants(source)
                if not pathlib.is_within(key, target)
            ]
            self.check_new(target, count=1 + len(to_copy))
            cs = self._image.cluster_size
            needed = sum(
                (self._entries[key].size + cs - 1) // cs for key in to_copy)
            if needed > self._table.count_free():
                raise OSError(errno.ENOSPC, os.strerror(errno.ENOSPC))
            created = {target: Entry.directory(target)}
            try:
                for key in to_copy:
                    child = self._entries[key]
                    new_path = target + key[len(source.path):]
                    if child.is_dir:
                        created[new_path] = Entry.directory(new_path)
                    else:
                        created[new_path] = self._copy_file(child, new_path)
            except Exception:
                for entry in created.values():
                    self._table.free(entry.start_cluster)
                raise
            self._entries.update(created)
        self.logger.info('Copied %s to %s', source.path, target)

    def _copy_file(self, source, new_path):
        # Returns a new Entry for new_path holding a fresh copy of source's data
        cs = self._image.cluster_size
        src_chain = list(self._table.chain(source.start_cluster))
        if len(src_chain) != (source.size + cs - 1) // cs:
            raise CorruptedChain(
                source.start_cluster,
                f'{source.path} has {len(src_chain)} clusters for '
                f'{source.size} bytes')
        start = self._table.allocate(source.size, cs)
        try:
            dst_chain = list(self._table.chain(start))
            if len(dst_chain) != len(src_chain):
                raise CorruptedChain(
                    start, f'allocated {len(dst_chain)} clusters, '
                    f'expected {len(src_chain)}')
            for src_c, dst_c in zip(src_chain, dst_chain):
                self._image.write_cluster(
                    dst_c, self._image.read_cluster(src_c))
        except Exception:
            self._table.free(start)
            raise
        return Entry.file(
            new_path, source.size, start, dst_chain[-1] if dst_chain else None)

    def move_rename(self, src, dst):
        """
        Move (or rename) the file or directory at *src* to *dst*. If *dst* is
        an existing directory, the entry is moved within it under its current
        name. Only meta-data changes; chains are untouched.

        Moving a directory moves everything beneath it (and the cursor, if it
        lies within the directory).
        """
        source = self._must_exist(src)
        if source is ROOT:
            raise OSError(errno.EINVAL, 'Cannot move the root directory')
        target = self._target(source, dst)
        pathlib.validate_name(target)
        self._must_not_exist(target)
        self._must_be_dir(pathlib.parent(target))

        def rekey(key):
            if key.startswith(source.path):
                return target + key[len(source.path):]
            return key

        if source.is_dir:
            self._entries = {
                rekey(key): entry._replace(path=rekey(key))
                for key, entry in self._entries.items()
            }
            if pathlib.is_within(self._cursor, source.path):
                self._cursor = rekey(pathlib.dir_key(self._cursor))
        else:
            self._entries = {
                (target if key == source.path else key):
                    (entry._replace(path=target)
                     if key == source.path else entry)
                for key, entry in self._entries.items()
            }
        self.logger.info('Moved %s to %s', source.path, target)

    def change_dir(self, path):
        """
        Change the cursor to the directory at *path*. The path "." changes
        nothing, and ".." moves to the parent directory (and does nothing at
        the root). Raises :exc:`FileNotFoundError` if *path* does not name an
        existing directory.
        """
        abs_path = pathlib.resolve_dots(self.resolve(path))
        entry = self._lookup(abs_path)
        if entry is None or not entry.is_dir:
            raise FileNotFoundError(
                errno.ENOENT, os.strerror(errno.ENOENT), path)
        self._cursor = entry.path
        return self._cursor

    def pwd(self):
        """
        Returns the cursor: the absolute path of the current directory, ending
        with a separator.
        """
        return self._cursor

    def describe(self, path):
        """
        Return a :class:`Description` of the entry at *path*, including the
        clusters of its chain in order. Raises
        :exc:`~pseudofat.table.CorruptedChain` if the chain is damaged.
        """
        entry = self._must_exist(path)
        return Description(
            entry.path, entry.kind,
            tuple(self._table.chain(entry.start_cluster)))
