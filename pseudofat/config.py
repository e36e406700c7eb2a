# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import os
from pathlib import Path
from decimal import Decimal, InvalidOperation
from contextlib import suppress
from configparser import ConfigParser
from argparse import ArgumentParser
from copy import deepcopy


# The locations to attempt to read the configuration from
XDG_CONFIG_HOME = Path(os.environ.get('XDG_CONFIG_HOME', '~/.config'))
CONFIG_LOCATIONS = (
    Path('/etc/pseudofat/config'),
    Path('/usr/local/etc/pseudofat/config'),
    Path(XDG_CONFIG_HOME / 'pseudofat.conf'),
    Path('~/.pseudofat.conf'),
)


class ConfigArgumentParser(ArgumentParser):
    """
    A variant of :class:`~argparse.ArgumentParser` that links arguments to
    specified keys in a :class:`~configparser.ConfigParser` instance.

    Typical usage is to construct an instance, define the arguments on it
    (associating them with configuration *section* and *key* names where
    appropriate), then call :meth:`read_configs` to parse a set of
    configuration files. These are checked against the (optional) *template*
    configuration passed to the initializer, which defines the set of valid
    sections and keys. The result is passed to :meth:`set_defaults_from` to
    set the argument defaults, after which
    :meth:`~argparse.ArgumentParser.parse_args` may be called as usual. For
    example::

        >>> from pathlib import Path
        >>> from pseudofat.config import *
        >>> parser = ConfigArgumentParser()
        >>> parser.add_argument('--cluster-size', type=size,
        ... section='fs', key='cluster_size')
        >>> Path('defaults.conf').write_text('''
        ... [fs]
        ... cluster_size = 512
        ... ''')
        >>> defaults = parser.read_configs(['defaults.conf'])
        >>> parser.set_defaults_from(defaults)
        >>> parser.parse_args([]).cluster_size
        512
        >>> parser.parse_args(['--cluster-size', '1KB']).cluster_size
        1024

    Defaults drawn from the configuration are reflected in ``--help`` output,
    but are still overridden by arguments given on the command line.
    """
    def __init__(self, *args, template=None, **kwargs):
        super().__init__(*args, **kwargs)
        if template is not None:
            self._template = self._get_config_parser()
            self._template.read(template)
        else:
            self._template = None
        self._config_map = {}

    def _get_config_parser(self):
        """
        Generate and return a new :class:`~configparser.ConfigParser` with
        appropriate configuration (interpolation, delimiters, etc.) for the
        desired parsing behaviour.
        """
        return ConfigParser(
            delimiters=('=',), empty_lines_in_values=False,
            interpolation=None, strict=False)

    def add_argument(self, *args, section=None, key=None, **kwargs):
        """
        Adds *section* and *key* parameters. These link the new argument to the
        specified configuration entry.
        """
        return self._add_config_action(
            *args, method=super().add_argument, section=section, key=key,
            **kwargs)

    def add_argument_group(self, title=None, description=None, section=None):
        """
        Adds a new argument group object and returns it.

        The new argument group will likewise accept *section* and *key*
        parameters on its :meth:`add_argument` method. The *section* parameter
        will default to the value of the *section* parameter passed to this
        method (but may be explicitly overridden).
        """
        group = super().add_argument_group(title=title, description=description)
        def add_argument(*args, section=section, key=None,
                         _add_arg=group.add_argument, **kwargs):
            return self._add_config_action(
                *args, method=_add_arg, section=section, key=key, **kwargs)
        group.add_argument = add_argument
        return group

    def _add_config_action(self, *args, method, section, key, **kwargs):
        if (section is None) != (key is None):
            raise ValueError('section and key must be specified together')
        if kwargs.get('action') in ('store_true', 'store_false'):
            type = boolean
        else:
            type = kwargs.get('type', str)
        action = method(*args, **kwargs)
        if key is not None:
            with suppress(KeyError):
                if self._config_map[action.dest] != (section, key, type):
                    raise ValueError(
                        'section and key must match for all equivalent dest '
                        'values')
            self._config_map[action.dest] = (section, key, type)
        return action

    def read_configs(self, paths):
        """
        Constructs a :class:`~configparser.ConfigParser` instance (starting
        from a copy of the template, if any), and reads the configuration
        files specified by *paths*, a list of :class:`~pathlib.Path`-like
        objects, into it, strictly in order so that later files override
        earlier ones. Missing files are ignored.

        If a template was given, sections and keys are checked against it and
        :exc:`ValueError` is raised for anything unrecognized. Returns the
        configuration parser instance.
        """
        if self._template is None:
            config = self._get_config_parser()
        else:
            config = deepcopy(self._template)
        valid = {
            section: set(keys)
            for section, keys in config.items()
        }
        for path in paths:
            path = Path(path).expanduser()
            config.read(path)
            if self._template is not None:
                for section, keys in config.items():
                    if section not in valid:
                        raise ValueError(
                            f'{path}: invalid section [{section}]')
                    for key in set(keys) - valid[section]:
                        raise ValueError(
                            f'{path}: invalid key {key} in [{section}]')
        return config

    def set_defaults_from(self, config):
        """
        Sets defaults for all arguments from their associated configuration
        entries in *config*.
        """
        kwargs = {
            dest:
                config.getboolean(section, key)
                if type is boolean else
                config[section][key]
            for dest, (section, key, type) in self._config_map.items()
            if section in config
            and key in config[section]
        }
        return super().set_defaults(**kwargs)

    def update_config(self, config, namespace):
        """
        Copy values from *namespace* (an :class:`argparse.Namespace`,
        presumably the result of calling something like
        :meth:`~argparse.ArgumentParser.parse_args`) to *config*, a
        :class:`~configparser.ConfigParser`. Note that namespace values will be
        converted to :class:`str` implicitly.
        """
        for dest, (section, key, type) in self._config_map.items():
            config[section][key] = str(getattr(namespace, dest))


def boolean(s):
    """
    Convert the string *s* to a :class:`bool`. A typical set of case
    insensitive strings are accepted: "yes", "y", "true", "t", and "1" are
    converted to :data:`True`, while "no", "n", "false", "f", and "0" convert
    to :data:`False`. Other values will result in :exc:`ValueError`.
    """
    try:
        return {
            'n':     False,
            'no':    False,
            'f':     False,
            'false': False,
            '0':     False,
            'y':     True,
            'yes':   True,
            't':     True,
            'true':  True,
            '1':     True,
        }[str(s).strip().lower()]
    except KeyError:
        raise ValueError(f'invalid boolean value: {s}')


def size(s):
    """
    Convert the string *s*, which must contain a number followed by an optional
    suffix (KB for kilo-bytes, MB for mega-bytes, etc.), and return the
    absolute integer value (scale the number in the string by the suffix
    given). Negative sizes are rejected with :exc:`ValueError`.
    """
    s = str(s).strip().upper()
    try:
        for power, suffix in enumerate(['KB', 'MB', 'GB', 'TB'], start=1):
            if s.endswith(suffix):
                n = Decimal(s[:-len(suffix)])
                result = int(n * 2 ** (10 * power))
                break
        else:
            if s.endswith('B'):
                result = int(s[:-1])
            else:
                # No recognized suffix; attempt straight conversion
                result = int(s)
    except InvalidOperation:
        raise ValueError(f'invalid size: {s}')
    if result < 0:
        raise ValueError(f'invalid size: {s}')
    return result


def positive_int(s):
    """
    Convert the string *s* to an :class:`int`, raising :exc:`ValueError` if
    it is not a positive integer.
    """
    result = int(s)
    if result < 1:
        raise ValueError(f'{s} is not a positive integer')
    return result
