# upholstery: typed fabric for a lightweight Couch
# Copyright (C) 2011-2016 Novacut Inc
#
# This file is part of `upholstery`.
#
# `upholstery` is free software: you can redistribute it and/or modify it under
# the terms of the GNU Lesser General Public License as published by the Free
# Software Foundation, either version 3 of the License, or (at your option) any
# later version.
#
# `upholstery` is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS
# FOR A PARTICULAR PURPOSE.  See the GNU Lesser General Public License for more
# details.
#
# You should have received a copy of the GNU Lesser General Public License along
# with `upholstery`.  If not, see <http://www.gnu.org/licenses/>.
#
# Authors:
#   Jason Gerard DeRose <jderose@novacut.com>
#

"""
Document revisions with CouchDB's comparison rules.

A revision has the form ``'<update-number>-<digest>'``.  Update numbers are
compared as integers and digests are compared case-insensitively:

>>> Revision('10-aaBB') == Revision('10-AABB')
True
>>> Revision('10-abc') > Revision('2-xyz')
True

Two equal revisions always render the same way, with a lowercase digest:

>>> str(Revision('10-AABB'))
'10-aabb'

Revisions are server data, so the only way to get one is to parse a string,
and a string that isn't a revision raises `DecodeError`:

>>> Revision('abc')
Traceback (most recent call last):
  ...
upholstery.errors.DecodeError: bad revision: 'abc'

"""

import re
from functools import total_ordering

from .errors import DecodeError


REVISION_RE = re.compile('([0-9]{1,20})-([0-9A-Za-z]+)')
MAX_UPDATE_NUMBER = 2**64 - 1


@total_ordering
class Revision:
    __slots__ = ('_number', '_digest')

    def __init__(self, text):
        if not isinstance(text, str):
            raise DecodeError('revision must be a string; got {!r}'.format(text))
        match = REVISION_RE.fullmatch(text)
        if match is None:
            raise DecodeError('bad revision: {!r}'.format(text))
        number = int(match.group(1))
        if not (1 <= number <= MAX_UPDATE_NUMBER):
            raise DecodeError(
                'revision update number out of range: {!r}'.format(text)
            )
        self._number = number
        self._digest = match.group(2).lower()

    @classmethod
    def parse(cls, text):
        return cls(text)

    @classmethod
    def from_etag(cls, etag):
        """
        Parse a revision from an ETag header value.

        CouchDB quotes the revision in its ETag headers:

        >>> Revision.from_etag('"1-967a00dff5e02add41819138abb3284d"')
        Revision('1-967a00dff5e02add41819138abb3284d')

        """
        if not isinstance(etag, str):
            raise DecodeError('ETag must be a string; got {!r}'.format(etag))
        if len(etag) < 2 or etag[0] != '"' or etag[-1] != '"':
            raise DecodeError('ETag is not quoted: {!r}'.format(etag))
        return cls(etag[1:-1])

    @property
    def update_number(self):
        return self._number

    @property
    def digest(self):
        return self._digest

    def etag(self):
        """
        Return this revision quoted for an If-Match or If-None-Match header.
        """
        return '"{}"'.format(self)

    def _key(self):
        return (self._number, self._digest)

    def __str__(self):
        return '{}-{}'.format(self._number, self._digest)

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, str(self))

    def __eq__(self, other):
        if not isinstance(other, Revision):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        if not isinstance(other, Revision):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())
