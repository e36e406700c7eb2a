# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

"""
Run shell-like commands against a simplified FAT-style file-system stored in
a disk image. Commands are read from the terminal, from standard input, or
from a script given with --script. The cluster table and directory tree are
held in memory; they start empty each time the shell starts, and the image is
formatted first if it does not exist or if --size is given.
"""

import os
import sys
import cmd
import errno
import shlex
import logging
from enum import Enum
from functools import wraps
from importlib import resources
from importlib.metadata import version

from . import lang
from .fs import FileSystem
from .table import CorruptedChain
from .namespace import Kind
from .config import (
    CONFIG_LOCATIONS,
    ConfigArgumentParser,
    size,
    positive_int,
)


class Status(Enum):
    """
    The one-line status codes printed by :class:`Shell` commands.
    """
    OK = 'OK'
    FILE_NOT_FOUND = 'FILE NOT FOUND'
    PATH_NOT_FOUND = 'PATH NOT FOUND'
    EXIST = 'EXIST'
    IS_A_DIRECTORY = 'IS A DIRECTORY'
    NOT_A_DIRECTORY = 'NOT A DIRECTORY'
    NOT_EMPTY = 'NOT EMPTY'
    FULL = 'FILESYSTEM IS FULL'
    NO_SPACE = 'NO FREE CLUSTERS'
    INVALID_ARGUMENTS = 'INVALID ARGUMENTS'
    CANNOT_ACCESS = 'CANNOT ACCESS FILE'
    CORRUPTED = 'CORRUPTED'

    def __str__(self):
        return self.value

    @classmethod
    def from_exception(cls, exc, not_found=None):
        """
        Return the status corresponding to *exc*, or :data:`None` if *exc* is
        not an error the file-system reports. A missing entry maps to
        *not_found*, which defaults to :attr:`FILE_NOT_FOUND`.
        """
        if isinstance(exc, CorruptedChain):
            return cls.CORRUPTED
        elif isinstance(exc, FileNotFoundError):
            return cls.FILE_NOT_FOUND if not_found is None else not_found
        elif isinstance(exc, FileExistsError):
            return cls.EXIST
        elif isinstance(exc, IsADirectoryError):
            return cls.IS_A_DIRECTORY
        elif isinstance(exc, NotADirectoryError):
            return cls.NOT_A_DIRECTORY
        elif isinstance(exc, OSError):
            return {
                errno.ENOTEMPTY: cls.NOT_EMPTY,
                errno.ENFILE:    cls.FULL,
                errno.ENOSPC:    cls.NO_SPACE,
                errno.EINVAL:    cls.INVALID_ARGUMENTS,
                errno.EBUSY:     cls.INVALID_ARGUMENTS,
            }.get(exc.errno, cls.CANNOT_ACCESS)
        elif isinstance(exc, ValueError):
            return cls.INVALID_ARGUMENTS
        else:
            return None


def command(min_args, max_args=None, *, not_found=None):
    """
    Decorator for the ``do_*`` methods of :class:`Shell`. The raw argument
    string is split with :func:`shlex.split`, its length checked against
    *min_args* and *max_args* (which defaults to *min_args*), and the
    resulting words passed to the method as positional arguments.

    If the method returns a :class:`Status` it is printed; if it returns
    :data:`True` the shell exits. File-system errors are caught and printed
    as the corresponding :class:`Status` (see :meth:`Status.from_exception`);
    anything else propagates.
    """
    if max_args is None:
        max_args = min_args
    def decorator(method):
        @wraps(method)
        def wrapper(self, arg):
            try:
                args = shlex.split(arg)
            except ValueError:
                args = None
            if args is None or not min_args <= len(args) <= max_args:
                self.write(Status.INVALID_ARGUMENTS)
                return False
            try:
                result = method(self, *args)
            except (OSError, ValueError) as exc:
                status = Status.from_exception(exc, not_found)
                self.fs.logger.debug('%s failed: %s', method.__name__, exc)
                self.write(status)
                return False
            if isinstance(result, Status):
                self.write(result)
                return False
            return bool(result)
        return wrapper
    return decorator


def format_size(s):
    """
    Convert *s* to a size in bytes. A bare number is taken to be a number of
    mega-bytes; anything else is parsed by :func:`~pseudofat.config.size`.
    """
    s = s.strip()
    if s.isdigit():
        return int(s) * 2 ** 20
    return size(s)


class Shell(cmd.Cmd):
    """
    A :class:`cmd.Cmd` command interpreter over the :class:`FileSystem` *fs*.

    Commands are read from *stdin* (defaults to the terminal, with line
    editing) and output written to *stdout* (defaults to
    :data:`sys.stdout`). When *stdin* is given, the *prompt* is still written
    before each command; pass an empty *prompt* for non-interactive use.
    """
    def __init__(self, fs, prompt='pseudofat> ', stdin=None, stdout=None):
        super().__init__(stdin=stdin, stdout=stdout)
        if stdin is not None:
            self.use_rawinput = False
        self.prompt = prompt
        self.fs = fs

    def write(self, *lines):
        for line in lines:
            print(line, file=self.stdout)

    def emptyline(self):
        # Do nothing, rather than repeating the last command
        return False

    def default(self, line):
        name = line.split(None, 1)[0]
        self.write(f'UNKNOWN COMMAND: {name}')
        return False

    @command(2)
    def do_cp(self, src, dest):
        """
        cp SRC DEST: copy the file or directory SRC to DEST. If DEST is an
        existing directory, SRC is copied into it.
        """
        self.fs.copy(src, dest)
        return Status.OK

    @command(2)
    def do_mv(self, src, dest):
        """
        mv SRC DEST: move or rename the file or directory SRC to DEST. If DEST
        is an existing directory, SRC is moved into it.
        """
        self.fs.move_rename(src, dest)
        return Status.OK

    @command(1)
    def do_rm(self, path):
        """
        rm FILE: remove FILE, releasing its clusters.
        """
        self.fs.remove_file(path)
        return Status.OK

    @command(1, not_found=Status.PATH_NOT_FOUND)
    def do_mkdir(self, path):
        """
        mkdir DIR: create the directory DIR. Its parent must already exist.
        """
        self.fs.create_directory(path)
        return Status.OK

    @command(1, 2)
    def do_rmdir(self, *args):
        """
        rmdir [-r] DIR: remove the empty directory DIR. With -r, everything
        beneath DIR is removed too.
        """
        if len(args) == 2:
            if args[0] != '-r':
                return Status.INVALID_ARGUMENTS
            self.fs.remove_directory(args[1], recursive=True)
        else:
            self.fs.remove_directory(args[0], recursive=False)
        return Status.OK

    @command(0, 1, not_found=Status.PATH_NOT_FOUND)
    def do_ls(self, path=None):
        """
        ls [DIR]: list everything beneath DIR (or the current directory).
        """
        for name, kind in self.fs.list(path):
            self.write(f'{kind.value}: {name}')

    @command(1)
    def do_cat(self, path):
        """
        cat FILE: display the content of FILE.
        """
        data = self.fs.read_file(path).decode('utf-8', errors='replace')
        self.stdout.write(data)
        if data and not data.endswith('\n'):
            self.stdout.write('\n')

    @command(1, not_found=Status.PATH_NOT_FOUND)
    def do_cd(self, path):
        """
        cd DIR: change the current directory to DIR.
        """
        self.fs.change_dir(path)
        return Status.OK

    @command(0)
    def do_pwd(self):
        """
        pwd: print the current directory.
        """
        self.write(self.fs.pwd())

    @command(1)
    def do_info(self, path):
        """
        info PATH: show the chain of clusters belonging to PATH.
        """
        desc = self.fs.describe(path)
        if desc.kind is Kind.DIRECTORY:
            self.write(f'{desc.path}: Is a directory, no clusters allocated')
        elif not desc.clusters:
            self.write(f'{desc.path}: No clusters allocated')
        else:
            clusters = ' -> '.join(str(c) for c in desc.clusters)
            self.write(f'{desc.path}: Clusters {clusters}')

    @command(2, not_found=Status.PATH_NOT_FOUND)
    def do_incp(self, source, dest):
        """
        incp HOSTFILE DEST: copy HOSTFILE from the host into the file-system
        as DEST.
        """
        try:
            f = open(source, 'rb')
        except FileNotFoundError:
            return Status.FILE_NOT_FOUND
        except OSError:
            return Status.CANNOT_ACCESS
        with f:
            self.fs.import_file(f, dest)
        return Status.OK

    @command(2)
    def do_outcp(self, src, target):
        """
        outcp FILE HOSTFILE: copy FILE out of the file-system to HOSTFILE on
        the host.
        """
        # Check the source before creating anything on the host
        self.fs.describe(src)
        try:
            f = open(target, 'wb')
        except OSError:
            return Status.PATH_NOT_FOUND
        with f:
            self.fs.export_file(src, f)
        return Status.OK

    @command(1, not_found=Status.PATH_NOT_FOUND)
    def do_touch(self, path):
        """
        touch FILE: create the empty file FILE.
        """
        self.fs.create_file(path)
        return Status.OK

    @command(1)
    def do_format(self, capacity):
        """
        format SIZE: re-create the image with SIZE bytes, discarding all
        content. A bare number is taken as mega-bytes (e.g. "format 600");
        suffixes such as KB or MB are also accepted.
        """
        self.fs.format(format_size(capacity))
        return Status.OK

    @command(1)
    def do_load(self, script):
        """
        load SCRIPT: execute the commands in the host file SCRIPT, one per
        line.
        """
        try:
            f = open(script, encoding='utf-8')
        except OSError:
            return Status.FILE_NOT_FOUND
        with f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                self.write(f'Executing: {line}')
                if self.onecmd(line):
                    return True
        return Status.OK

    @command(1)
    def do_bug(self, path):
        """
        bug FILE: damage a randomly chosen cluster of FILE (for testing
        check).
        """
        cluster = self.fs.inject_fault(path)
        self.write(
            f'Damaged cluster {cluster} of file {self.fs.find(path).path}')

    @command(0)
    def do_check(self):
        """
        check: scan the cluster table for damage.
        """
        self.write(*self.fs.scan().lines())

    @command(0)
    def do_exit(self):
        """
        exit: leave the shell.
        """
        return True

    do_quit = do_exit

    def do_EOF(self, arg):
        return True


def get_parser():
    """
    Returns the command line parser for the application, pre-configured with
    defaults from the application's configuration file(s). See
    :func:`~pseudofat.config.ConfigArgumentParser` for more information.
    """
    parser = ConfigArgumentParser(
        description=__doc__,
        template=resources.files('pseudofat') / 'default.conf')
    parser.add_argument(
        '--version', action='version', version=version('pseudofat'))
    parser.add_argument(
        'image', metavar='IMAGE',
        help=lang._("the disk image holding the file-system's data"))
    parser.add_argument(
        '-s', '--size', type=format_size, default=None,
        help=lang._(
            "format the image with the specified size before reading "
            "commands; a bare number is taken as MB (e.g. 600), or suffixes "
            "such as KB or MB may be given"))
    fs_section = parser.add_argument_group(
        'fs', section='fs',
        description=lang._("settings for the layout of the file-system"))
    fs_section.add_argument(
        '--default-size', type=size, key='size',
        help=lang._(
            "the size to format IMAGE with if it does not already exist "
            "(default: %(default)s)"))
    fs_section.add_argument(
        '--cluster-size', type=size, key='cluster_size',
        help=lang._(
            "the size of each cluster in bytes (default: %(default)s)"))
    fs_section.add_argument(
        '--max-entries', type=positive_int, key='max_entries',
        help=lang._(
            "the maximum number of files and directories "
            "(default: %(default)s)"))

    shell_section = parser.add_argument_group('shell', section='shell')
    shell_section.add_argument(
        '--prompt', key='prompt',
        help=lang._(
            "the prompt shown when reading commands from a terminal "
            "(default: %(default)s)"))
    parser.add_argument(
        '-c', '--script', metavar='FILE', default=None,
        help=lang._(
            "read commands from FILE rather than standard input"))
    parser.add_argument(
        '-v', '--verbose', dest='log_level',
        action='store_const', const=logging.INFO,
        help=lang._("print more output"))
    parser.add_argument(
        '-q', '--quiet', dest='log_level',
        action='store_const', const=logging.CRITICAL,
        help=lang._("print no output"))

    defaults = parser.read_configs(CONFIG_LOCATIONS)
    parser.set_defaults(log_level=logging.WARNING)
    parser.set_defaults_from(defaults)
    return parser


def run_shell(conf, fs):
    """
    Read and execute commands against *fs* according to *conf*: from the
    script file if one was given, otherwise from standard input. A prompt is
    only shown (and line editing only provided) when standard input is a
    terminal.
    """
    if conf.script is not None:
        with open(conf.script, encoding='utf-8') as script:
            Shell(fs, prompt='', stdin=script).cmdloop()
    elif sys.stdin.isatty():
        Shell(fs, prompt=f'{conf.prompt} ').cmdloop()
    else:
        Shell(fs, prompt='', stdin=sys.stdin).cmdloop()


def main(args=None):
    """
    The main entry point for the :program:`pseudofat-sh` application. Takes
    *args*, the sequence of command line arguments to parse. Returns the exit
    code of the application (0 for a normal exit, and non-zero otherwise).

    If ``DEBUG=1`` is found in the application's environment, top-level
    exceptions will be printed with a full back-trace. ``DEBUG=2`` will launch
    PDB in post-mortem mode.
    """
    try:
        debug = int(os.environ['DEBUG'])
    except (KeyError, ValueError):
        debug = 0
    lang.init()

    try:
        conf = get_parser().parse_args(args)
        conf.logger = logging.getLogger('pseudofat')
        conf.logger.addHandler(logging.StreamHandler(sys.stderr))
        conf.logger.setLevel(logging.DEBUG if debug else conf.log_level)

        fs = FileSystem(
            conf.image, cluster_size=conf.cluster_size,
            max_entries=conf.max_entries)
        if conf.size is not None:
            fs.format(conf.size)
        elif not fs.image.exists():
            fs.format(conf.default_size)
        run_shell(conf, fs)
    except Exception as e:
        if not debug:
            print(str(e), file=sys.stderr)
            return 1
        elif debug == 1:
            raise
        else:
            import pdb
            pdb.post_mortem()
    else:
        return 0
