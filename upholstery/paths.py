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
Canonical, slash-rooted paths to databases, documents, and views.

A path is built from names, never from a raw string with an implied
convention.  It renders to the percent-encoded form used on the wire and
parses back to an equal value:

>>> p = DocumentPath('db', DocumentId.design('my views'))
>>> str(p)
'/db/_design/my%20views'
>>> DocumentPath.parse(str(p)) == p
True

Parsing never accepts something it couldn't render back.  Empty segments,
a missing leading slash, a trailing slash, and the wrong number of segments
all raise `PathParseError`:

>>> DatabasePath.parse('db')
Traceback (most recent call last):
  ...
upholstery.errors.PathParseError: path must start with "/": 'db'

"""

from urllib.parse import quote, unquote

from .errors import PathParseError
from .names import (
    DatabaseName, DocumentName, ViewName, DocumentId, PREFIXES, DESIGN, NORMAL,
)


VIEW_SEGMENT = '_view'


def encode_segment(segment):
    return quote(segment, safe='')


def decode_segment(segment, text):
    try:
        return unquote(segment, errors='strict')
    except UnicodeDecodeError as e:
        raise PathParseError(
            'path is not valid UTF-8 after percent-decoding', text
        ) from e


def split_path(text):
    """
    Split *text* into its percent-decoded segments.

    For example:

    >>> split_path('/db/_design/my%20views')
    ['db', '_design', 'my views']

    """
    if not isinstance(text, str):
        raise TypeError('path must be a `str`; got {!r}'.format(text))
    if not text.startswith('/'):
        raise PathParseError('path must start with "/"', text)
    if text == '/':
        raise PathParseError('path has too few segments', text)
    if text.endswith('/'):
        raise PathParseError('path cannot end with "/"', text)
    raw = text[1:].split('/')
    if '' in raw:
        raise PathParseError('path has an empty segment', text)
    return [decode_segment(segment, text) for segment in raw]


def _check_count(parts, count, text):
    if len(parts) < count:
        raise PathParseError('path has too few segments', text)
    if len(parts) > count:
        raise PathParseError('path has too many segments', text)


def _check_segment(parts, index, expected, text):
    if parts[index] != expected:
        raise PathParseError(
            'expected {!r} at segment {}'.format(expected, index), text
        )


def _database_name(db):
    if isinstance(db, DatabasePath):
        return db.database_name
    if isinstance(db, DatabaseName):
        return db
    return DatabaseName(db)


def _document_name(name):
    if isinstance(name, DocumentName):
        return name
    return DocumentName(name)


def _view_name(name):
    if isinstance(name, ViewName):
        return name
    return ViewName(name)


class Path:
    """
    Base class for all path types.

    Sub-classes only need to implement `Path.segments()`, `Path.parse()`, and
    `Path._args()`.
    """

    __slots__ = ()

    @classmethod
    def parse(cls, text):
        raise NotImplementedError(
            '{}.parse()'.format(cls.__name__)
        )

    def segments(self):
        raise NotImplementedError(
            '{}.segments()'.format(self.__class__.__name__)
        )

    def _args(self):
        raise NotImplementedError(
            '{}._args()'.format(self.__class__.__name__)
        )

    def render(self):
        return '/' + '/'.join(encode_segment(s) for s in self.segments())

    def child(self, *segments):
        """
        Render this path with extra literal *segments* appended.

        Used by actions to address sub-resources such as ``_changes``:

        >>> DatabasePath('db').child('_changes')
        '/db/_changes'

        """
        return '/'.join([self.render()] + [encode_segment(s) for s in segments])

    def __str__(self):
        return self.render()

    def __repr__(self):
        return '{}({})'.format(
            self.__class__.__name__,
            ', '.join(repr(str(a)) for a in self._args())
        )

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._args() == other._args()

    def __hash__(self):
        return hash((self.__class__.__name__,) + self._args())


class DatabasePath(Path):
    """
    Path of a database, eg ``'/db'``.
    """

    __slots__ = ('_db_name',)

    def __init__(self, db_name):
        self._db_name = _database_name(db_name)

    @classmethod
    def parse(cls, text):
        parts = split_path(text)
        _check_count(parts, 1, text)
        return cls(parts[0])

    @property
    def database_name(self):
        return self._db_name

    def segments(self):
        return (self._db_name.value,)

    def _args(self):
        return (self._db_name,)

    def document(self, doc_id):
        return DocumentPath(self, doc_id)

    def design_document(self, ddoc_name):
        return DesignDocumentPath(self, ddoc_name)

    def view(self, ddoc_name, view_name):
        return ViewPath(self, ddoc_name, view_name)


class DocumentPath(Path):
    """
    Path of a normal, design, or local document, eg ``'/db/_local/doc'``.
    """

    __slots__ = ('_db_name', '_doc_id')

    def __init__(self, db, doc_id):
        self._db_name = _database_name(db)
        if isinstance(doc_id, str):
            doc_id = DocumentId.parse(doc_id)
        if not isinstance(doc_id, DocumentId):
            raise TypeError(
                'doc_id must be a `DocumentId` or `str`; got {!r}'.format(doc_id)
            )
        self._doc_id = doc_id

    @classmethod
    def parse(cls, text):
        parts = split_path(text)
        if len(parts) < 2:
            raise PathParseError('path has too few segments', text)
        rest = parts[1:]
        for (kind, prefix) in PREFIXES.items():
            if rest[0] == prefix:
                _check_count(rest, 2, text)
                return cls(parts[0], DocumentId(kind, rest[1]))
        _check_count(rest, 1, text)
        return cls(parts[0], DocumentId(NORMAL, rest[0]))

    @property
    def database_name(self):
        return self._db_name

    @property
    def database_path(self):
        return DatabasePath(self._db_name)

    @property
    def document_id(self):
        return self._doc_id

    def segments(self):
        return (self._db_name.value,) + self._doc_id.segments()

    def _args(self):
        return (self._db_name, self._doc_id)


class DesignDocumentPath(Path):
    """
    Path of a design document, eg ``'/db/_design/views'``.
    """

    __slots__ = ('_db_name', '_ddoc_name')

    def __init__(self, db, ddoc_name):
        self._db_name = _database_name(db)
        self._ddoc_name = _document_name(ddoc_name)

    @classmethod
    def parse(cls, text):
        parts = split_path(text)
        _check_count(parts, 3, text)
        _check_segment(parts, 1, PREFIXES[DESIGN], text)
        return cls(parts[0], parts[2])

    @property
    def database_name(self):
        return self._db_name

    @property
    def design_document_name(self):
        return self._ddoc_name

    @property
    def document_id(self):
        return DocumentId(DESIGN, self._ddoc_name)

    def document_path(self):
        return DocumentPath(self._db_name, self.document_id)

    def view(self, view_name):
        return ViewPath(self._db_name, self._ddoc_name, view_name)

    def segments(self):
        return (self._db_name.value,) + self.document_id.segments()

    def _args(self):
        return (self._db_name, self._ddoc_name)


class ViewPath(Path):
    """
    Path of a view, eg ``'/db/_design/views/_view/by_time'``.
    """

    __slots__ = ('_db_name', '_ddoc_name', '_view_name')

    def __init__(self, db, ddoc_name, view_name):
        self._db_name = _database_name(db)
        self._ddoc_name = _document_name(ddoc_name)
        self._view_name = _view_name(view_name)

    @classmethod
    def parse(cls, text):
        parts = split_path(text)
        _check_count(parts, 5, text)
        _check_segment(parts, 1, PREFIXES[DESIGN], text)
        _check_segment(parts, 3, VIEW_SEGMENT, text)
        return cls(parts[0], parts[2], parts[4])

    @property
    def database_name(self):
        return self._db_name

    @property
    def design_document_name(self):
        return self._ddoc_name

    @property
    def design_document_path(self):
        return DesignDocumentPath(self._db_name, self._ddoc_name)

    @property
    def view_name(self):
        return self._view_name

    def segments(self):
        return (
            (self._db_name.value,)
            + DocumentId(DESIGN, self._ddoc_name).segments()
            + (VIEW_SEGMENT, self._view_name.value)
        )

    def _args(self):
        return (self._db_name, self._ddoc_name, self._view_name)
