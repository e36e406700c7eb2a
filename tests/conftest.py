import random

import pytest

from pseudofat.fs import FileSystem
from pseudofat.table import ClusterTable


def make_data(size, seed=0):
    # Deterministic, non-repeating-per-cluster content so misplaced clusters
    # are detected
    return random.Random(seed).randbytes(size)


@pytest.fixture()
def image_path(tmp_path):
    return tmp_path / 'disk.img'


@pytest.fixture()
def rng():
    return random.Random(42)


@pytest.fixture()
def table(rng):
    return ClusterTable(16, rng=rng)


@pytest.fixture()
def fs(image_path, rng):
    # 1MB in 4KB clusters: 256 clusters
    result = FileSystem(image_path, cluster_size=4096, max_entries=100, rng=rng)
    result.format(1024 * 1024)
    return result


@pytest.fixture()
def small_fs(image_path, rng):
    # 8 clusters of 16 bytes, with room for 10 entries
    result = FileSystem(image_path, cluster_size=16, max_entries=10, rng=rng)
    result.format(128)
    return result


@pytest.fixture()
def host_file(tmp_path):
    def make(name, data):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return make
