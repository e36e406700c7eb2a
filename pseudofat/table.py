# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import os
import errno
import random
import logging
import warnings
from enum import Enum
from collections import abc, namedtuple
from itertools import islice, pairwise


class Mark(Enum):
    """
    The two payload-free states a cluster slot may hold: :attr:`FREE` (the
    cluster belongs to no chain) and :attr:`END` (the cluster terminates a
    chain).
    """
    FREE = 'free'
    END = 'end'

FREE = Mark.FREE
END = Mark.END


class Next(namedtuple('Next', ('cluster',))):
    """
    A slot value linking to the following *cluster* of a chain.
    """
    __slots__ = ()


class Corrupted(namedtuple('Corrupted', ('sentinel',), defaults=(-5,))):
    """
    A slot value marking a cluster as damaged. The *sentinel* is carried
    purely for reporting purposes; a :class:`Corrupted` slot is never
    navigable.
    """
    __slots__ = ()


class CorruptedChain(OSError):
    """
    Raised when walking a chain encounters a corrupted slot, a free slot, a
    link outside the table, or a cycle.
    """
    def __init__(self, cluster, reason):
        super().__init__(
            errno.EIO, f'Cluster {cluster} is corrupted ({reason})')
        self.cluster = cluster

class EmptyChain(ValueError):
    """
    Raised by :meth:`ClusterTable.corrupt` when there are no clusters to
    damage.
    """

class DamagedChain(Warning):
    """
    Issued by :meth:`ClusterTable.free` when a chain being released ends in a
    damaged link rather than an end marker. Clusters beyond the damage cannot
    be found and are not released.
    """


class ClusterTable(abc.MutableSequence):
    """
    A :class:`~collections.abc.MutableSequence` representing the cluster
    allocation table of a file-system with *capacity* clusters.

    Each slot holds one of :data:`FREE`, :data:`END`, a :class:`Next` link, or
    a :class:`Corrupted` marker. As with a real FAT, only replacement of slots
    is valid; insertion and deletion raise :exc:`TypeError`. The table is
    re-sized (and wiped) only by :meth:`reset`.

    The :meth:`allocate` method links free clusters into a new chain (lowest
    index first), :meth:`chain` walks an existing chain, and :meth:`free`
    releases one. :meth:`verify` and :meth:`corrupt` exist for integrity
    checking and fault injection respectively. The optional *rng* (a
    :class:`random.Random` instance) is used by :meth:`corrupt` to pick its
    victim.
    """
    logger = logging.getLogger('pseudofat')

    def __init__(self, capacity=0, rng=None):
        if capacity < 0:
            raise ValueError(f'invalid capacity {capacity}')
        self._slots = [FREE] * capacity
        self._rng = random.Random() if rng is None else rng

    def __repr__(self):
        return (
            f'<{self.__class__.__name__} capacity={len(self)} '
            f'free={self.count_free()}>')

    def __len__(self):
        return len(self._slots)

    def __getitem__(self, cluster):
        return self._slots[cluster]

    def __setitem__(self, cluster, value):
        if not (value in (FREE, END) or isinstance(value, (Next, Corrupted))):
            raise ValueError(f'{value!r} is not a valid cluster value')
        self._slots[cluster] = value

    def __delitem__(self, cluster):
        raise TypeError('cluster table length is immutable')

    def insert(self, cluster, value):
        """
        Raises :exc:`TypeError`; the table length is immutable.
        """
        raise TypeError('cluster table length is immutable')

    def reset(self, capacity):
        """
        Discard every chain and re-size the table to *capacity* free slots.
        """
        if capacity < 0:
            raise ValueError(f'invalid capacity {capacity}')
        self._slots = [FREE] * capacity

    def mark_free(self, cluster):
        """
        Marks *cluster* as free.
        """
        self[cluster] = FREE

    def mark_end(self, cluster):
        """
        Marks *cluster* as the end of a chain.
        """
        self[cluster] = END

    def free_clusters(self):
        """
        Generator that scans the table for free clusters, yielding each in
        ascending order as it is found.
        """
        for cluster, value in enumerate(self._slots):
            if value is FREE:
                yield cluster

    def count_free(self):
        """
        Returns the number of free clusters in the table.
        """
        return sum(1 for value in self._slots if value is FREE)

    def allocate(self, byte_size, cluster_size):
        """
        Allocate a chain large enough to hold *byte_size* bytes in clusters of
        *cluster_size* bytes, returning the index of its first cluster, or
        :data:`None` if *byte_size* is 0 (empty files own no clusters).

        Free clusters are taken in ascending order and linked in the order
        they are found. If there are not enough free clusters, :exc:`OSError`
        with the code ENOSPC is raised and the table is left untouched.
        """
        if byte_size < 0:
            raise ValueError(f'invalid size {byte_size}')
        needed = (byte_size + cluster_size - 1) // cluster_size
        if not needed:
            return None
        to_alloc = list(islice(self.free_clusters(), needed))
        if len(to_alloc) < needed:
            raise OSError(errno.ENOSPC, os.strerror(errno.ENOSPC))
        for this_c, next_c in pairwise(to_alloc):
            self[this_c] = Next(next_c)
        self.mark_end(to_alloc[-1])
        self.logger.debug(
            'Allocated %d clusters from %d for %d bytes',
            needed, to_alloc[0], byte_size)
        return to_alloc[0]

    def _walk(self, start):
        # Yields (cluster, value) along the chain from start, stopping after
        # the first slot that is not a valid link. Raises CorruptedChain if a
        # link leaves the table or revisits a cluster
        seen = set()
        cluster = start
        while cluster is not None:
            if not 0 <= cluster < len(self._slots):
                raise CorruptedChain(cluster, 'outside the table')
            if cluster in seen:
                raise CorruptedChain(cluster, 'cycle in chain')
            seen.add(cluster)
            value = self._slots[cluster]
            yield cluster, value
            cluster = value.cluster if isinstance(value, Next) else None

    def chain(self, start):
        """
        Generator method which yields all the clusters in the chain starting
        at *start* (which may be :data:`None` for an empty chain).

        Raises :exc:`CorruptedChain` if the chain contains a corrupted or free
        slot, links outside the table, or loops back on itself.
        """
        for cluster, value in self._walk(start):
            if isinstance(value, Corrupted):
                raise CorruptedChain(cluster, f'value {value.sentinel}')
            elif value is FREE:
                raise CorruptedChain(cluster, 'free cluster in chain')
            yield cluster

    def members(self, start):
        """
        Returns a :class:`list` of the clusters belonging to the chain
        starting at *start*, tolerating damage: the walk stops at the first
        corrupted, free, out-of-range or repeated slot. A corrupted slot is
        itself included as a member.
        """
        result = []
        try:
            for cluster, value in self._walk(start):
                if value is FREE:
                    break
                result.append(cluster)
        except CorruptedChain:
            pass
        return result

    def free(self, start):
        """
        Release the chain starting at *start*, resetting every reachable slot
        to :data:`FREE`, and return the number of clusters released.

        This is best-effort and idempotent: releasing an empty or
        already-released chain does nothing. If the walk ends in a damaged
        link, the clusters reached so far (including the damaged slot) are
        released and a :exc:`DamagedChain` warning is issued.
        """
        freed = 0
        try:
            for cluster, value in self._walk(start):
                if value is FREE:
                    break
                self.mark_free(cluster)
                freed += 1
                if isinstance(value, Corrupted):
                    raise CorruptedChain(cluster, f'value {value.sentinel}')
        except CorruptedChain as exc:
            self.logger.warning('Released damaged chain: %s', exc.strerror)
            warnings.warn(DamagedChain(exc.strerror))
        return freed

    def verify(self):
        """
        Returns the :class:`set` of clusters whose value is neither
        :data:`FREE`, :data:`END`, nor a :class:`Next` link to a cluster
        within the table. An empty set indicates a healthy table. The table is
        never modified.
        """
        return {
            cluster
            for cluster, value in enumerate(self._slots)
            if not (
                value is FREE or value is END or (
                    isinstance(value, Next) and
                    0 <= value.cluster < len(self._slots)))
        }

    def corrupt(self, start, sentinel=-5):
        """
        Overwrite one cluster, chosen uniformly at random from the chain
        starting at *start*, with a :class:`Corrupted` marker carrying
        *sentinel*. Returns the damaged cluster. Raises :exc:`EmptyChain` if
        the chain has no clusters.
        """
        members = self.members(start)
        if not members:
            raise EmptyChain('chain has no clusters allocated')
        cluster = self._rng.choice(members)
        self[cluster] = Corrupted(sentinel)
        return cluster
