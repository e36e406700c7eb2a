import pytest

from pseudofat.path import *


def test_normalize():
    assert normalize('/', 'a') == '/a'
    assert normalize('/', '/a') == '/a'
    assert normalize('/a/', 'b') == '/a/b'
    assert normalize('/a', 'b') == '/a/b'
    assert normalize('/a/', '/b') == '/b'
    assert normalize('/', '//a///b//') == '/a/b/'
    assert normalize('/a/', '') == '/a/'
    assert normalize('/', '') == '/'
    # Dots are left alone
    assert normalize('/a/', '../b') == '/a/../b'
    assert normalize('/', './a') == '/./a'


@pytest.mark.parametrize('cursor, path', [
    ('/', 'a'),
    ('/', '/a//b/'),
    ('/x/y/', 'c//d'),
    ('/x/', ''),
    ('/', '../..'),
])
def test_normalize_idempotent(cursor, path):
    once = normalize(cursor, path)
    assert normalize(cursor, once) == once
    assert once.startswith(sep)
    assert '//' not in once


def test_keys():
    assert file_key('/a/b/') == '/a/b'
    assert file_key('/a/b') == '/a/b'
    assert file_key('/') == '/'
    assert dir_key('/a/b') == '/a/b/'
    assert dir_key('/a/b/') == '/a/b/'
    assert dir_key('/') == '/'


def test_parts():
    assert get_parts('/') == ()
    assert get_parts('/a/b/') == ('a', 'b')
    assert basename('/a/b') == 'b'
    assert basename('/a/b/') == 'b'
    assert basename('/') == ''
    assert join('/a', 'b') == '/a/b'
    assert join('/', 'b') == '/b'


def test_parent():
    assert parent('/a/b') == '/a/'
    assert parent('/a/b/') == '/a/'
    assert parent('/a') == '/'
    assert parent('/') == '/'


def test_resolve_dots():
    assert resolve_dots('/a/./b') == '/a/b/'
    assert resolve_dots('/a/../b') == '/b/'
    assert resolve_dots('/a/b/..') == '/a/'
    assert resolve_dots('/..') == '/'
    assert resolve_dots('/../../a') == '/a/'
    assert resolve_dots('/') == '/'


def test_is_within():
    assert is_within('/a/b', '/a')
    assert is_within('/a/b/c/', '/a/')
    assert is_within('/a', '/a/')
    assert is_within('/anything', '/')
    assert not is_within('/ab', '/a')
    assert not is_within('/a', '/a/b')


def test_validate_name():
    assert validate_name('/a/b') == 'b'
    for bad in ('/', '/a/.', '/a/..'):
        with pytest.raises(ValueError):
            validate_name(bad)
