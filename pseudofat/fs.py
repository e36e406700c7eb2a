# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import io
import os
import errno
import logging
from shutil import copyfileobj
from contextlib import nullcontext

from . import integrity
from .image import BackingImage, ClusterFile
from .table import ClusterTable
from .namespace import NamespaceStore, Entry, Kind


class FileSystem:
    """
    Represents a simplified FAT-style file-system stored in the disk image
    *filename*, divided into clusters of *cluster_size* bytes, with room for
    at most *max_entries* files and directories.

    The cluster table and namespace live entirely in memory; only file data is
    stored in the image. Hence, constructing an instance over an existing
    image yields an empty file-system whose capacity is derived from the
    image's size (all clusters free), while a missing image yields a
    file-system with no capacity at all until :meth:`format` is called.

    This is the entry-point for all operations. Paths are resolved relative to
    the current directory (see :meth:`change_dir`). Errors are reported by
    raising the appropriate :exc:`OSError` sub-class (or :exc:`ValueError`
    for invalid arguments); see :mod:`pseudofat.sh` for their mapping onto
    status codes. The optional *rng* (a :class:`random.Random`) controls which
    cluster :meth:`inject_fault` damages.
    """
    logger = logging.getLogger('pseudofat')

    def __init__(self, filename, cluster_size=4096, max_entries=100,
                 rng=None):
        self._image = BackingImage(filename, cluster_size)
        self._table = ClusterTable(
            self._image.clusters() if self._image.exists() else 0, rng=rng)
        self._namespace = NamespaceStore(self._table, self._image, max_entries)

    def __repr__(self):
        return (
            f'<{self.__class__.__name__} filename={self._image.filename!r} '
            f'capacity={self.capacity} free={self.count_free()}>')

    @property
    def image(self):
        """
        The :class:`~pseudofat.image.BackingImage` holding cluster data.
        """
        return self._image

    @property
    def table(self):
        """
        The :class:`~pseudofat.table.ClusterTable` of the file-system.

        .. warning::

            This attribute is intended for low-level inspection and for
            :mod:`pseudofat.integrity`. Altering the table directly may
            invalidate entries in the namespace.
        """
        return self._table

    @property
    def namespace(self):
        """
        The :class:`~pseudofat.namespace.NamespaceStore` of the file-system.
        """
        return self._namespace

    @property
    def cluster_size(self):
        """
        Returns the size (in bytes) of clusters in the file-system.
        """
        return self._image.cluster_size

    @property
    def capacity(self):
        """
        Returns the total number of clusters in the file-system.
        """
        return len(self._table)

    def count_free(self):
        """
        Returns the number of free clusters in the file-system.
        """
        return self._table.count_free()

    def format(self, capacity_bytes):
        """
        (Re-)create the backing image with *capacity_bytes* zero bytes, reset
        the cluster table to ``capacity_bytes // cluster_size`` free clusters,
        and empty the namespace. The image is written first; if that fails, the
        in-memory state is left as it was.
        """
        self._image.create(capacity_bytes)
        self._table.reset(capacity_bytes // self.cluster_size)
        self._namespace.clear()
        self.logger.info(
            'Formatted %s with %d clusters of %d bytes',
            self._image.filename, self.capacity, self.cluster_size)

    def find(self, path):
        """
        Return the :class:`~pseudofat.namespace.Entry` at *path*, or
        :data:`None`.
        """
        return self._namespace.find(path)

    def create_directory(self, path):
        return self._namespace.create(path, Kind.DIRECTORY)

    def create_file(self, path):
        """
        Create an empty file at *path*; it owns no clusters until data is
        imported.
        """
        return self._namespace.create(path, Kind.FILE)

    def remove_directory(self, path, recursive=True):
        self._namespace.remove_directory(path, recursive=recursive)

    def remove_file(self, path):
        self._namespace.remove_file(path)

    def list(self, path=None):
        return self._namespace.list(path)

    def change_dir(self, path):
        return self._namespace.change_dir(path)

    def pwd(self):
        return self._namespace.pwd()

    def copy(self, src, dst):
        self._namespace.copy(src, dst)

    def move_rename(self, src, dst):
        self._namespace.move_rename(src, dst)

    def describe(self, path):
        return self._namespace.describe(path)

    def _chain_of(self, path):
        # Returns the file entry at path and the list of its clusters
        entry = self._namespace.find(path)
        if entry is None:
            raise FileNotFoundError(
                errno.ENOENT, os.strerror(errno.ENOENT), path)
        if entry.is_dir:
            raise IsADirectoryError(
                errno.EISDIR, os.strerror(errno.EISDIR), path)
        return entry, list(self._table.chain(entry.start_cluster))

    def open_file(self, path):
        """
        Returns a read-only :class:`~pseudofat.image.ClusterFile` for the file
        at *path*.
        """
        entry, clusters = self._chain_of(path)
        return ClusterFile(self._image, clusters, entry.size)

    def read_file(self, path):
        """
        Returns the content of the file at *path* as :class:`bytes`.
        """
        with self.open_file(path) as f:
            return f.readall()

    def import_file(self, source, dst):
        """
        Copy *source*, a host filename or a binary file-like object supporting
        ``seek``, into a new file at *dst* within the file-system.

        The size of *source* is determined and a chain allocated before
        anything is written, so :exc:`OSError` with the code ENOSPC is raised
        without touching the image if there is insufficient space. The source
        is then written one cluster at a time following the chain. If this
        fails part way, the chain is released and no entry remains.
        """
        with _open_source(source) as src:
            size = src.seek(0, io.SEEK_END)
            src.seek(0)
            ns = self._namespace
            target = ns.resolve(dst)
            # Check the name before allocating so a bad name costs nothing
            ns.check_new(Entry.file(target).path)
            start = self._table.allocate(size, self.cluster_size)
            try:
                clusters = list(self._table.chain(start))
                for cluster in clusters:
                    buf = src.read(self.cluster_size)
                    self._image.write_cluster(cluster, buf)
                entry = ns.insert(Entry.file(
                    target, size, start, clusters[-1] if clusters else None))
            except Exception:
                self._table.free(start)
                raise
        self.logger.info(
            'Imported %s to %s (%d bytes, %d clusters)',
            getattr(source, 'name', source), entry.path, size, len(clusters))
        return entry

    def export_file(self, src, target):
        """
        Copy the file at *src* within the file-system to *target*, a host
        filename or a binary file-like object. Exactly the file's size in
        bytes is written.
        """
        with self.open_file(src) as source:
            if isinstance(target, (str, os.PathLike)):
                with open(target, 'wb') as out:
                    copyfileobj(source, out)
            else:
                copyfileobj(source, target)
        self.logger.info('Exported %s to %s', src, target)

    def inject_fault(self, path):
        """
        Damage a randomly chosen cluster of the file at *path*; see
        :func:`pseudofat.integrity.inject_fault`.
        """
        return integrity.inject_fault(self._namespace, self._table, path)

    def scan(self):
        """
        Verify the cluster table; see :func:`pseudofat.integrity.scan`.
        """
        return integrity.scan(self._table)


def _open_source(source):
    # Opens a host filename for reading, or wraps an already open file so that
    # it isn't closed on exit
    if isinstance(source, (str, os.PathLike)):
        return open(source, 'rb')
    return nullcontext(source)
