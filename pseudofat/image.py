# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import io
import os
import errno


class BackingImage:
    """
    Represents the flat disk image backing a file-system, specified by
    *filename* which must be a :class:`str` or :class:`~pathlib.Path` naming
    the file. The image is divided into clusters of *cluster_size* bytes;
    cluster *n* occupies bytes ``[n * cluster_size, (n + 1) * cluster_size)``.
    There is no metadata region; the image holds nothing but cluster data.

    No file handle is held between calls. Each of :meth:`create`,
    :meth:`read_cluster`, and :meth:`write_cluster` opens and closes the image
    itself, so each may independently raise :exc:`OSError` (if the image is
    missing, unreadable, etc.) without affecting any in-memory state.
    """
    def __init__(self, filename, cluster_size=4096):
        if cluster_size < 1:
            raise ValueError(f'invalid cluster size {cluster_size}')
        if isinstance(filename, os.PathLike):
            filename = filename.__fspath__()
        self._filename = filename
        self._cs = cluster_size

    def __repr__(self):
        return (
            f'<{self.__class__.__name__} filename={self._filename!r} '
            f'cluster_size={self._cs}>')

    @property
    def filename(self):
        """
        The filename of the image.
        """
        return self._filename

    @property
    def cluster_size(self):
        """
        Returns the size (in bytes) of clusters in the image.
        """
        return self._cs

    def exists(self):
        """
        Returns :data:`True` if the image file exists.
        """
        return os.path.exists(self._filename)

    def size(self):
        """
        Returns the current size of the image file in bytes.
        """
        return os.path.getsize(self._filename)

    def clusters(self):
        """
        Returns the number of whole clusters the image currently holds.
        """
        return self.size() // self._cs

    def create(self, size):
        """
        (Re-)create the image with exactly *size* zero bytes, discarding any
        prior content.
        """
        if size < 0:
            raise ValueError(f'invalid image size {size}')
        with open(self._filename, 'wb') as f:
            f.truncate(size)

    def _offset(self, cluster):
        if cluster < 0:
            raise IndexError(cluster)
        return cluster * self._cs

    def read_cluster(self, cluster, length=None):
        """
        Read *length* bytes (or the whole cluster if *length* is
        :data:`None`) from the start of *cluster*. Raises :exc:`ValueError`
        if *length* exceeds the cluster size, and :exc:`OSError` with code EIO
        if the image is too short to contain the requested bytes.
        """
        if length is None:
            length = self._cs
        elif not 0 <= length <= self._cs:
            raise ValueError(
                f'{length} is outside range 0..{self._cs}')
        offset = self._offset(cluster)
        with open(self._filename, 'rb') as f:
            f.seek(offset)
            data = f.read(length)
        if len(data) < length:
            raise OSError(
                errno.EIO, f'Short read from cluster {cluster} of '
                f'{self._filename}')
        return data

    def write_cluster(self, cluster, data):
        """
        Write *data*, which must not exceed the cluster size, to the start of
        *cluster*. Cluster bytes beyond ``len(data)`` are left untouched.
        """
        if len(data) > self._cs:
            raise ValueError(
                f'{len(data)} bytes will not fit in a {self._cs} byte cluster')
        offset = self._offset(cluster)
        with open(self._filename, 'r+b') as f:
            if offset + len(data) > f.seek(0, io.SEEK_END):
                raise OSError(
                    errno.EIO, f'Cluster {cluster} is beyond the end of '
                    f'{self._filename}')
            f.seek(offset)
            f.write(data)


class ClusterFile(io.RawIOBase):
    """
    Represents a file stored in a chain of clusters within a
    :class:`BackingImage`. The *clusters* are the indexes of the chain in
    order, and *size* is the size of the file recorded in its namespace entry.
    Only the first *size* bytes of the chain are readable; the tail of the
    last cluster is never returned.

    As a derivative of :class:`io.RawIOBase`, all the usual read methods
    should be available. Instances are read-only.
    """
    def __init__(self, image, clusters, size):
        super().__init__()
        cs = image.cluster_size
        if len(clusters) != (size + cs - 1) // cs:
            raise ValueError(
                f'{len(clusters)} clusters cannot hold exactly {size} bytes')
        self._image = image
        self._map = list(clusters)
        self._size = size
        self._pos = 0

    def readable(self):
        return True

    def seekable(self):
        return True

    def readall(self):
        buf = bytearray(max(0, self._size - self._pos))
        mem = memoryview(buf)
        pos = 0
        while self._pos < self._size:
            pos += self.readinto(mem[pos:])
        return bytes(buf)

    def readinto(self, buf):
        cs = self._image.cluster_size
        # index is which cluster of the file we wish to read; left and right
        # are the byte offsets within the cluster to return
        index = self._pos // cs
        left = self._pos - (index * cs)
        right = min(cs, left + len(buf), self._size - (index * cs))
        read = max(right - left, 0)
        if read > 0:
            data = self._image.read_cluster(self._map[index], right)
            buf[:read] = data[left:right]
            self._pos += read
        return read

    def seek(self, pos, whence=io.SEEK_SET):
        if whence == io.SEEK_SET:
            pos = pos
        elif whence == io.SEEK_CUR:
            pos = self._pos + pos
        elif whence == io.SEEK_END:
            pos = self._size + pos
        else:
            raise ValueError(f'invalid whence: {whence}')
        if pos < 0:
            raise OSError(errno.EINVAL, 'invalid argument')
        self._pos = pos
        return self._pos

    def tell(self):
        return self._pos
