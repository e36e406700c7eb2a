import io
import logging

import pytest
from conftest import make_data

from pseudofat.integrity import *
from pseudofat.table import Corrupted, Next, END, FREE


def test_scan_healthy(table):
    table.allocate(30, 10)
    report = scan(table)
    assert report.healthy
    assert report.total == 0
    assert report.clusters == ()
    assert list(report.lines()) == ['Filesystem is OK']


def test_scan_corrupted(table):
    table.allocate(30, 10)
    table[2] = Corrupted()
    table[7] = Next(99)
    report = scan(table)
    assert not report.healthy
    assert report.total == 2
    assert report.clusters == (2, 7)
    assert report.corrupted == ((2, Corrupted(-5)), (7, Next(99)))
    assert list(report.lines()) == [
        'Cluster 2 is corrupted: value -5',
        'Cluster 7 is corrupted: value 99',
        'Total corrupted clusters: 2',
    ]
    # Scanning leaves the table alone
    assert table[2] == Corrupted()


def test_format_value():
    assert format_value(Corrupted(-5)) == '-5'
    assert format_value(Next(3)) == '3'
    assert format_value(END) == 'end'
    assert format_value(FREE) == 'free'


def test_inject_fault_scenario(fs):
    # A two-cluster file damaged once reports exactly one bad cluster, which
    # belongs to the file
    fs.import_file(io.BytesIO(make_data(5000)), 'f')
    chain = fs.describe('f').clusters
    assert len(chain) == 2
    cluster = inject_fault(fs.namespace, fs.table, 'f')
    assert cluster in chain
    assert scan(fs.table).clusters == (cluster,)


def test_inject_fault_logs(fs, caplog):
    fs.import_file(io.BytesIO(b'data'), 'f')
    with caplog.at_level(logging.INFO, logger='pseudofat'):
        cluster = inject_fault(fs.namespace, fs.table, 'f')
    assert f'Damaged cluster {cluster} of /f' in caplog.text


def test_inject_fault_bad(fs):
    fs.create_directory('d')
    fs.create_file('e')
    with pytest.raises(FileNotFoundError):
        inject_fault(fs.namespace, fs.table, 'missing')
    with pytest.raises(IsADirectoryError):
        inject_fault(fs.namespace, fs.table, 'd')
    with pytest.raises(EmptyChain):
        inject_fault(fs.namespace, fs.table, 'e')
