#!/usr/bin/env python3
#
# couchclient: revision-aware client for a CouchDB-style HTTP/JSON API
# Copyright (C) 2011-2016 Novacut Inc
#
# This file is part of `couchclient`.
#
# `couchclient` is free software: you can redistribute it and/or modify it
# under the terms of the GNU Lesser General Public License as published by the
# Free Software Foundation, either version 3 of the License, or (at your
# option) any later version.
#
# `couchclient` is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS
# FOR A PARTICULAR PURPOSE.  See the GNU Lesser General Public License for more
# details.
#
# You should have received a copy of the GNU Lesser General Public License along
# with `couchclient`.  If not, see <http://www.gnu.org/licenses/>.
#
# Authors:
#   Jason Gerard DeRose <jderose@novacut.com>
#

"""
Install `couchclient`.
"""

import sys
if sys.version_info < (3, 6):
    sys.exit('couchclient requires Python 3.6 or newer')

from setuptools import setup, Command
import os
from os import path
import re


tree = path.dirname(path.abspath(__file__))


def read_version():
    # Read without importing, `requests` may not be installed yet.
    with open(path.join(tree, 'couchclient', '__init__.py')) as fp:
        match = re.search(r"^__version__ = '([^']+)'$", fp.read(), re.M)
    return match.group(1)


class Test(Command):
    description = 'run unit tests and doc tests'

    user_options = [
        ('skip-all', None, 'skip all tests'),
        ('live-url=', None, 'also run live tests against the server at URL'),
    ]

    def initialize_options(self):
        self.skip_all = 0
        self.live_url = None

    def finalize_options(self):
        pass

    def run(self):
        if self.skip_all:
            sys.exit(0)
        if self.live_url:
            os.environ['COUCHCLIENT_TEST_URL'] = self.live_url
        from couchclient.tests.run import run_tests
        if not run_tests():
            raise SystemExit('2')


setup(
    name='couchclient',
    description='revision-aware client for a CouchDB-style HTTP/JSON API',
    version=read_version(),
    author='Jason Gerard DeRose',
    author_email='jderose@novacut.com',
    license='LGPLv3+',
    packages=['couchclient', 'couchclient.tests'],
    python_requires='>=3.6',
    install_requires=['requests'],
    extras_require={
        'test': ['pytest'],
    },
    cmdclass={'test': Test},
)
