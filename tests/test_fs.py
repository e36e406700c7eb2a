import io
import errno
from unittest import mock

import pytest
from conftest import make_data

from pseudofat.fs import *
from pseudofat.namespace import Kind, Description
from pseudofat.table import Corrupted, CorruptedChain, DamagedChain


def test_fs_init_missing_image(image_path):
    fs = FileSystem(image_path)
    assert fs.capacity == 0
    assert fs.count_free() == 0
    assert fs.cluster_size == 4096
    assert not image_path.exists()


def test_fs_init_existing_image(image_path):
    image_path.write_bytes(b'\0' * 10000)
    fs = FileSystem(image_path, cluster_size=1024)
    # Partial trailing clusters are unusable
    assert fs.capacity == 9
    assert fs.count_free() == 9
    assert len(fs.namespace) == 0


def test_fs_repr(fs, image_path):
    assert repr(fs) == (
        f'<FileSystem filename={str(image_path)!r} capacity=256 free=256>')


def test_fs_format(fs, image_path):
    assert fs.capacity == 256
    assert fs.count_free() == 256
    assert image_path.stat().st_size == 1024 * 1024
    fs.create_directory('a')
    fs.import_file(io.BytesIO(b'data'), 'f')
    fs.change_dir('a')
    fs.format(64 * 1024)
    assert fs.capacity == 16
    assert fs.count_free() == 16
    assert fs.list('/') == []
    assert fs.pwd() == '/'
    assert image_path.stat().st_size == 64 * 1024


def test_fs_format_failure_leaves_state(fs):
    fs.create_directory('a')
    with mock.patch.object(fs.image, 'create') as create:
        create.side_effect = PermissionError(errno.EACCES, 'denied')
        with pytest.raises(PermissionError):
            fs.format(4096)
    assert fs.capacity == 256
    assert fs.find('a') is not None


@pytest.mark.parametrize('size', [0, 1, 4095, 4096, 4097, 3 * 4096 + 7])
def test_fs_round_trip(fs, size):
    data = make_data(size, seed=size)
    entry = fs.import_file(io.BytesIO(data), 'f')
    assert entry.size == size
    assert fs.read_file('f') == data
    out = io.BytesIO()
    fs.export_file('f', out)
    assert out.getvalue() == data
    assert fs.count_free() == 256 - (size + 4095) // 4096


def test_fs_round_trip_host_files(fs, host_file, tmp_path):
    data = make_data(10000)
    source = host_file('source.bin', data)
    fs.import_file(source, 'f')
    target = tmp_path / 'target.bin'
    fs.export_file('f', target)
    assert target.read_bytes() == data
    fs.export_file('f', str(target))
    assert target.read_bytes() == data


def test_fs_import_scenario(fs):
    fs.create_directory('a')
    entry = fs.import_file(io.BytesIO(make_data(10000)), '/a/f.bin')
    assert entry.path == '/a/f.bin'
    assert entry.size == 10000
    assert fs.describe('/a/f.bin') == Description(
        '/a/f.bin', Kind.FILE, (0, 1, 2))
    assert entry.start_cluster == 0
    assert entry.end_cluster == 2
    assert fs.count_free() == 253
    assert fs.list('a') == [('f.bin', Kind.FILE)]


def test_fs_import_no_space(small_fs):
    before = list(small_fs.table)
    with pytest.raises(OSError) as err:
        small_fs.import_file(io.BytesIO(b'x' * 129), 'f')
    assert err.value.errno == errno.ENOSPC
    assert small_fs.find('f') is None
    assert list(small_fs.table) == before
    # Exactly full is fine
    small_fs.import_file(io.BytesIO(b'x' * 128), 'f')
    assert small_fs.count_free() == 0


def test_fs_import_bad_target(fs):
    fs.import_file(io.BytesIO(b'data'), 'f')
    with pytest.raises(FileExistsError):
        fs.import_file(io.BytesIO(b'data'), 'f')
    with pytest.raises(FileNotFoundError):
        fs.import_file(io.BytesIO(b'data'), 'missing/f')
    with pytest.raises(NotADirectoryError):
        fs.import_file(io.BytesIO(b'data'), 'f/g')
    assert fs.count_free() == 255


def test_fs_import_missing_source(fs, tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.import_file(tmp_path / 'missing', 'f')
    assert fs.find('f') is None


def test_fs_import_write_failure(fs):
    with mock.patch.object(fs.image, 'write_cluster') as write_cluster:
        write_cluster.side_effect = [None, OSError(errno.EIO, 'broken')]
        with pytest.raises(OSError) as err:
            fs.import_file(io.BytesIO(make_data(10000)), 'f')
        assert err.value.errno == errno.EIO
    assert fs.find('f') is None
    assert fs.count_free() == 256


def test_fs_import_full(small_fs):
    for i in range(10):
        small_fs.create_file(f'f{i}')
    with pytest.raises(OSError) as err:
        small_fs.import_file(io.BytesIO(b'x'), 'g')
    assert err.value.errno == errno.ENFILE
    assert small_fs.count_free() == 8


def test_fs_export_bad(fs, tmp_path):
    fs.create_directory('d')
    with pytest.raises(FileNotFoundError):
        fs.export_file('missing', tmp_path / 'out')
    with pytest.raises(IsADirectoryError):
        fs.export_file('d', tmp_path / 'out')
    assert not (tmp_path / 'out').exists()


def test_fs_read_corrupted(fs):
    entry = fs.import_file(io.BytesIO(make_data(10000)), 'f')
    fs.table[entry.start_cluster + 1] = Corrupted()
    with pytest.raises(CorruptedChain):
        fs.read_file('f')
    with pytest.raises(CorruptedChain):
        fs.describe('f')


def test_fs_create_and_list(fs):
    fs.create_directory('a')
    fs.create_file('a/empty')
    fs.create_directory('/a/b/')
    assert fs.list('/') == [
        ('a', Kind.DIRECTORY),
        ('a/empty', Kind.FILE),
        ('a/b', Kind.DIRECTORY),
    ]
    assert fs.read_file('a/empty') == b''
    assert fs.describe('a/empty').clusters == ()
    assert fs.count_free() == 256


def test_fs_remove_directory_scenario(fs):
    fs.create_directory('a')
    fs.create_directory('a/b')
    fs.import_file(io.BytesIO(make_data(5000)), 'a/b/f')
    fs.import_file(io.BytesIO(make_data(100)), 'a/g')
    fs.import_file(io.BytesIO(make_data(100)), 'keep')
    assert fs.count_free() == 252
    fs.remove_directory('a')
    assert fs.count_free() == 255
    assert fs.list('/') == [('keep', Kind.FILE)]
    assert not fs.scan().corrupted


def test_fs_remove_directory_not_recursive(fs):
    fs.create_directory('a')
    fs.create_file('a/f')
    with pytest.raises(OSError) as err:
        fs.remove_directory('a', recursive=False)
    assert err.value.errno == errno.ENOTEMPTY


def test_fs_remove_file(fs):
    fs.import_file(io.BytesIO(make_data(9000)), 'f')
    assert fs.count_free() == 253
    fs.remove_file('f')
    assert fs.count_free() == 256
    assert fs.find('f') is None


def test_fs_remove_damaged_file(fs):
    fs.import_file(io.BytesIO(make_data(9000)), 'f')
    fs.inject_fault('f')
    with pytest.warns(DamagedChain):
        fs.remove_file('f')
    assert fs.find('f') is None


def test_fs_copy(fs):
    data = make_data(9000)
    fs.import_file(io.BytesIO(data), 'f')
    fs.create_directory('d')
    fs.copy('f', 'd')
    assert fs.read_file('d/f') == data
    assert fs.count_free() == 250
    fs.copy('d', 'e')
    assert fs.read_file('e/f') == data
    assert fs.count_free() == 247


def test_fs_copy_into_self(fs):
    fs.create_directory('d')
    fs.create_directory('d/e')
    with pytest.raises(OSError) as err:
        fs.copy('d', 'd/e')
    assert err.value.errno == errno.EINVAL


def test_fs_move_rename(fs):
    data = make_data(5000)
    fs.create_directory('a')
    fs.import_file(io.BytesIO(data), 'a/f')
    before = fs.describe('a/f').clusters
    fs.move_rename('a', 'b')
    assert fs.find('a/f') is None
    assert fs.read_file('b/f') == data
    assert fs.describe('b/f').clusters == before
    assert fs.count_free() == 254


def test_fs_change_dir(fs):
    fs.create_directory('a')
    fs.create_directory('a/b')
    assert fs.change_dir('a/b') == '/a/b/'
    fs.import_file(io.BytesIO(b'data'), 'f')
    assert fs.find('/a/b/f') is not None
    assert fs.change_dir('..') == '/a/'
    assert fs.pwd() == '/a/'
    assert fs.read_file('b/f') == b'data'


def test_fs_open_file(fs):
    data = make_data(5000)
    fs.import_file(io.BytesIO(data), 'f')
    with fs.open_file('f') as f:
        f.seek(4090)
        assert f.read(10) == data[4090:4096]
        assert f.read(10) == data[4096:4106]


def test_fs_inject_fault_and_scan(fs):
    fs.import_file(io.BytesIO(make_data(5000)), 'f')
    assert fs.scan().healthy
    cluster = fs.inject_fault('f')
    assert cluster in (0, 1)
    report = fs.scan()
    assert not report.healthy
    assert report.clusters == (cluster,)
    assert report.total == 1
    with pytest.raises(CorruptedChain):
        fs.read_file('f')


def test_fs_inject_fault_bad(fs):
    fs.create_directory('d')
    fs.create_file('empty')
    with pytest.raises(FileNotFoundError):
        fs.inject_fault('missing')
    with pytest.raises(IsADirectoryError):
        fs.inject_fault('d')
    with pytest.raises(ValueError):
        fs.inject_fault('empty')
    assert fs.scan().healthy


def test_fs_path_uniqueness(fs):
    fs.create_directory('x')
    for path in ('x', '/x', 'x/', '//x'):
        with pytest.raises(FileExistsError):
            fs.create_file(path)
        with pytest.raises(FileExistsError):
            fs.create_directory(path)
    paths = [entry.path for entry in fs.namespace]
    assert len(paths) == len(set(paths)) == 1
