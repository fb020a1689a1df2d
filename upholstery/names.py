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
Validated names and document IDs.

A name is an immutable string token that is known to be safe to use as a
single path segment: it isn't empty, doesn't contain a ``'/'``, and doesn't
start with the ``'_'`` that CouchDB reserves for its own resources.

Names of different kinds never compare equal, even when their text is the
same:

>>> DatabaseName('foo') == DocumentName('foo')
False
>>> DatabaseName('foo') == DatabaseName('foo')
True

A `DocumentId` is a `DocumentName` plus a kind (`NORMAL`, `DESIGN`, or
`LOCAL`).  The ``_design/`` and ``_local/`` prefixes are stripped when parsing
and only put back when the ID is rendered:

>>> doc_id = DocumentId.parse('_design/foo')
>>> doc_id
DocumentId('design', DocumentName('foo'))
>>> str(doc_id)
'_design/foo'

"""

from functools import total_ordering

from dbase32 import random_id

from .errors import PathParseError


NORMAL = 'normal'
DESIGN = 'design'
LOCAL = 'local'
KINDS = (NORMAL, DESIGN, LOCAL)

PREFIXES = {
    DESIGN: '_design',
    LOCAL: '_local',
}


@total_ordering
class Name:
    """
    Base class for `DatabaseName`, `DocumentName`, and `ViewName`.
    """

    __slots__ = ('_value',)

    def __init__(self, value):
        if not isinstance(value, str):
            raise TypeError(
                '{} must be a `str`; got {!r}'.format(
                    self.__class__.__name__, value
                )
            )
        label = self.__class__.__name__
        if not value:
            raise PathParseError('{} cannot be empty'.format(label), value)
        if '/' in value:
            raise PathParseError('{} cannot contain "/"'.format(label), value)
        if value.startswith('_'):
            raise PathParseError('{} cannot start with "_"'.format(label), value)
        self._value = value

    @classmethod
    def parse(cls, text):
        return cls(text)

    @property
    def value(self):
        return self._value

    def __str__(self):
        return self._value

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self._value)

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._value < other._value

    def __hash__(self):
        return hash((self.__class__.__name__, self._value))


class DatabaseName(Name):
    """
    Name of a database, eg the ``'db'`` in ``'/db/doc'``.
    """

    __slots__ = ()


class DocumentName(Name):
    """
    Name of a document, without any ``_design/`` or ``_local/`` prefix.
    """

    __slots__ = ()


class ViewName(Name):
    """
    Name of a view within a design document.
    """

    __slots__ = ()


@total_ordering
class DocumentId:
    """
    Identifies a normal, design, or local document.

    Build one from a raw ID:

    >>> DocumentId.parse('_local/checkpoint')
    DocumentId('local', DocumentName('checkpoint'))

    Or from its parts:

    >>> str(DocumentId.design('views'))
    '_design/views'

    Applications shouldn't rely on how `DocumentId` values are ordered; it is
    only defined so they can be sorted.
    """

    __slots__ = ('_kind', '_name')

    def __init__(self, kind, name):
        if kind not in KINDS:
            raise ValueError(
                'kind must be one of {!r}; got {!r}'.format(KINDS, kind)
            )
        if isinstance(name, str):
            name = DocumentName(name)
        if not isinstance(name, DocumentName):
            raise TypeError(
                'name must be a `DocumentName` or `str`; got {!r}'.format(name)
            )
        self._kind = kind
        self._name = name

    @classmethod
    def parse(cls, text):
        if not isinstance(text, str):
            raise TypeError('text must be a `str`; got {!r}'.format(text))
        for (kind, prefix) in PREFIXES.items():
            if text.startswith(prefix + '/'):
                return cls(kind, text[len(prefix) + 1:])
        return cls(NORMAL, text)

    @classmethod
    def normal(cls, name):
        return cls(NORMAL, name)

    @classmethod
    def design(cls, name):
        return cls(DESIGN, name)

    @classmethod
    def local(cls, name):
        return cls(LOCAL, name)

    @property
    def kind(self):
        return self._kind

    @property
    def name(self):
        return self._name

    @property
    def is_design(self):
        return self._kind == DESIGN

    @property
    def is_local(self):
        return self._kind == LOCAL

    def segments(self):
        """
        Return the raw (not percent-encoded) path segments for this ID.

        This is the one place the reserved prefix is put back:

        >>> DocumentId.design('foo').segments()
        ('_design', 'foo')
        >>> DocumentId.normal('foo').segments()
        ('foo',)

        """
        if self._kind == NORMAL:
            return (self._name.value,)
        return (PREFIXES[self._kind], self._name.value)

    def __str__(self):
        return '/'.join(self.segments())

    def __repr__(self):
        return '{}({!r}, {!r})'.format(
            self.__class__.__name__, self._kind, self._name
        )

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return (self._kind, self._name) == (other._kind, other._name)

    def __lt__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return (KINDS.index(self._kind), self._name) < \
            (KINDS.index(other._kind), other._name)

    def __hash__(self):
        return hash((self._kind, self._name))


def random_document_id():
    """
    Return a normal `DocumentId` with a random 120-bit Dbase32 name.

    >>> random_document_id()  #doctest: +SKIP
    DocumentId('normal', DocumentName('5QKV5KVBM8NHJ6TEEQS6GUB6'))

    """
    return DocumentId(NORMAL, DocumentName(random_id()))
