# pseudofat: an in-memory FAT-style file-system emulator
#
# Copyright (c) 2023-2024 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2023-2024 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import locale
import gettext


_ = gettext.gettext

def init():
    """
    Set the process locale from the environment (falling back to "C" if the
    environment's locale is unavailable) and bind the message domain used by
    the shell's status and help strings.
    """
    try:
        locale.setlocale(locale.LC_ALL, '')
    except locale.Error:
        locale.setlocale(locale.LC_ALL, 'C')

    gettext.textdomain(__package__)
