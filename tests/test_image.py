import io
import errno

import pytest

from pseudofat.image import *


def test_image_init(image_path):
    img = BackingImage(image_path, 512)
    assert img.filename == str(image_path)
    assert img.cluster_size == 512
    assert repr(img) == (
        f'<BackingImage filename={str(image_path)!r} cluster_size=512>')
    assert not img.exists()
    with pytest.raises(ValueError):
        BackingImage(image_path, 0)


def test_image_create(image_path):
    img = BackingImage(image_path, 512)
    img.create(4096)
    assert img.exists()
    assert img.size() == 4096
    assert img.clusters() == 8
    assert image_path.read_bytes() == b'\0' * 4096
    # Re-creation discards prior content and re-sizes
    image_path.write_bytes(b'\xff' * 8192)
    img.create(1000)
    assert image_path.read_bytes() == b'\0' * 1000
    assert img.clusters() == 1
    with pytest.raises(ValueError):
        img.create(-1)


def test_image_create_bad_path(tmp_path):
    img = BackingImage(tmp_path / 'missing' / 'disk.img')
    with pytest.raises(OSError):
        img.create(4096)


def test_image_read_write(image_path):
    img = BackingImage(image_path, 16)
    img.create(64)
    img.write_cluster(2, b'hello')
    assert img.read_cluster(2) == b'hello' + b'\0' * 11
    assert img.read_cluster(2, 5) == b'hello'
    assert img.read_cluster(1) == b'\0' * 16
    assert image_path.read_bytes()[32:37] == b'hello'
    # Writes never spill into the following cluster
    img.write_cluster(2, b'x' * 16)
    assert img.read_cluster(3) == b'\0' * 16


def test_image_partial_write_preserves_tail(image_path):
    img = BackingImage(image_path, 16)
    img.create(16)
    img.write_cluster(0, b'a' * 16)
    img.write_cluster(0, b'bb')
    assert img.read_cluster(0) == b'bb' + b'a' * 14


def test_image_bad_transfers(image_path):
    img = BackingImage(image_path, 16)
    img.create(64)
    with pytest.raises(ValueError):
        img.write_cluster(0, b'x' * 17)
    with pytest.raises(ValueError):
        img.read_cluster(0, 17)
    with pytest.raises(IndexError):
        img.read_cluster(-1)
    with pytest.raises(IndexError):
        img.write_cluster(-1, b'x')


def test_image_beyond_end(image_path):
    img = BackingImage(image_path, 16)
    img.create(64)
    with pytest.raises(OSError) as err:
        img.write_cluster(4, b'x')
    assert err.value.errno == errno.EIO
    assert img.size() == 64
    with pytest.raises(OSError) as err:
        img.read_cluster(4)
    assert err.value.errno == errno.EIO


def test_image_missing(image_path):
    img = BackingImage(image_path, 16)
    with pytest.raises(FileNotFoundError):
        img.read_cluster(0)
    with pytest.raises(FileNotFoundError):
        img.write_cluster(0, b'x')


def test_image_truncated_externally(image_path):
    img = BackingImage(image_path, 16)
    img.create(64)
    with image_path.open('r+b') as f:
        f.truncate(40)
    assert img.read_cluster(2, 8) == b'\0' * 8
    with pytest.raises(OSError) as err:
        img.read_cluster(2)
    assert err.value.errno == errno.EIO


@pytest.fixture()
def cluster_file(image_path):
    img = BackingImage(image_path, 4)
    img.create(32)
    img.write_cluster(5, b'abcd')
    img.write_cluster(2, b'efgh')
    img.write_cluster(7, b'ijXX')
    return ClusterFile(img, [5, 2, 7], 10)


def test_cluster_file_read(cluster_file):
    with cluster_file as f:
        assert f.readable()
        assert f.seekable()
        assert not f.writable()
        assert f.readall() == b'abcdefghij'
        assert f.tell() == 10
        assert f.read() == b''


def test_cluster_file_partial_reads(cluster_file):
    with cluster_file as f:
        assert f.read(3) == b'abc'
        assert f.read(3) == b'd'
        assert f.read(10) == b'efgh'
        assert f.read(10) == b'ij'
        assert f.read(10) == b''


def test_cluster_file_seek(cluster_file):
    with cluster_file as f:
        assert f.seek(6) == 6
        assert f.read(2) == b'gh'
        assert f.seek(-3, io.SEEK_END) == 7
        assert f.readall() == b'hij'
        assert f.seek(-4, io.SEEK_CUR) == 6
        assert f.seek(100) == 100
        assert f.read(1) == b''
        with pytest.raises(OSError):
            f.seek(-1)
        with pytest.raises(ValueError):
            f.seek(0, 10)


def test_cluster_file_buffered(cluster_file):
    with io.BufferedReader(cluster_file) as f:
        assert f.read() == b'abcdefghij'


def test_cluster_file_bad_size(image_path):
    img = BackingImage(image_path, 4)
    img.create(32)
    with pytest.raises(ValueError):
        ClusterFile(img, [0, 1], 9)
    with pytest.raises(ValueError):
        ClusterFile(img, [0], 0)
    with ClusterFile(img, [], 0) as f:
        assert f.readall() == b''
