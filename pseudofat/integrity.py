# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

"""
Fault injection and verification for the cluster table. These operate on the
:class:`~pseudofat.table.ClusterTable` directly; the namespace is consulted
only to find the chain belonging to a file.
"""

import os
import errno
import logging
from collections import namedtuple

from .table import Corrupted, Next, EmptyChain

logger = logging.getLogger('pseudofat')


class ScanReport(namedtuple('ScanReport', ('corrupted',))):
    """
    The result of :func:`scan`. The *corrupted* field is a :class:`tuple` of
    (cluster, value) pairs, sorted by cluster, for every invalid slot found.
    """
    __slots__ = ()

    @property
    def healthy(self):
        return not self.corrupted

    @property
    def total(self):
        return len(self.corrupted)

    @property
    def clusters(self):
        return tuple(cluster for cluster, value in self.corrupted)

    def lines(self):
        """
        Generate the lines of a human readable report.
        """
        if self.healthy:
            yield 'Filesystem is OK'
        else:
            for cluster, value in self.corrupted:
                yield (
                    f'Cluster {cluster} is corrupted: '
                    f'value {format_value(value)}')
            yield f'Total corrupted clusters: {self.total}'


def format_value(value):
    """
    Render a cluster slot *value* for a report: the sentinel of a corrupted
    slot, the target of a link, or the name of a mark.
    """
    if isinstance(value, Corrupted):
        return str(value.sentinel)
    elif isinstance(value, Next):
        return str(value.cluster)
    else:
        return value.value


def scan(table):
    """
    Check every slot in *table* (a :class:`~pseudofat.table.ClusterTable`)
    and return a :class:`ScanReport`. The table is not modified.
    """
    return ScanReport(tuple(
        (cluster, table[cluster]) for cluster in sorted(table.verify())))


def inject_fault(namespace, table, path):
    """
    Damage one randomly chosen cluster of the file at *path* in *namespace*
    (a :class:`~pseudofat.namespace.NamespaceStore`) by overwriting its slot in
    *table* with a corrupted marker. Returns the cluster damaged.

    Raises :exc:`FileNotFoundError` if *path* does not exist,
    :exc:`IsADirectoryError` if it is a directory, and
    :exc:`~pseudofat.table.EmptyChain` if the file has no clusters.
    """
    entry = namespace.find(path)
    if entry is None:
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)
    if entry.is_dir:
        raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
    if entry.start_cluster is None:
        raise EmptyChain(f'{entry.path} has no clusters allocated')
    cluster = table.corrupt(entry.start_cluster)
    logger.info('Damaged cluster %d of %s', cluster, entry.path)
    return cluster
