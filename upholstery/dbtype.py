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
Read-only records mirroring what CouchDB sends back, plus the builders used
to assemble design documents.

Each record has a ``from_json()`` class method that takes the decoded JSON
value and either returns the record or raises `DecodeError`.  Fields that
CouchDB doesn't always send are ``None`` when missing.
"""

import re
from base64 import b64decode
from binascii import Error as Base64Error
from collections import namedtuple
from collections.abc import Mapping

from .errors import DecodeError, PathParseError, Nok
from .names import DatabaseName, DocumentId, ViewName
from .revision import Revision


SEQ_TYPES = (int, str)
VERSION_RE = re.compile(r'([0-9]{1,9})\.([0-9]{1,9})\.([0-9]{1,9})(?![0-9])')

# Fields pulled out of a document into `Document` attributes:
META_FIELDS = frozenset(['_id', '_rev', '_deleted', '_attachments'])

__all__ = (
    'Nok',
    'Database',
    'Version',
    'Vendor',
    'Root',
    'EmbeddedAttachment',
    'Document',
    'WriteResult',
    'ViewFunction',
    'ViewFunctionBuilder',
    'ViewFunctionMap',
    'Design',
    'DesignBuilder',
    'ViewRow',
    'ViewResult',
    'ChangeItem',
    'ChangeResult',
    'Changes',
)


def _type_name(kind):
    if isinstance(kind, tuple):
        return ' or '.join(k.__name__ for k in kind)
    return kind.__name__


def _is_instance(value, kind):
    if isinstance(value, bool):
        kinds = (kind if isinstance(kind, tuple) else (kind,))
        return bool in kinds
    return isinstance(value, kind)


def _object(obj, what):
    if not isinstance(obj, dict):
        raise DecodeError('{} must be an object; got {!r}'.format(what, obj))
    return obj


def _field(obj, key, kind, what, optional=False, default=None):
    if key not in obj:
        if optional:
            return default
        raise DecodeError('{} has no {!r}'.format(what, key))
    value = obj[key]
    if not _is_instance(value, kind):
        raise DecodeError('{} {!r} must be {}; got {!r}'.format(
            what, key, _type_name(kind), value)
        )
    return value


def _list(obj, key, what):
    return _field(obj, key, list, what)


def decode_revision(value):
    return Revision(value)


def decode_document_id(value):
    """
    Decode a document ID the server sent.

    A bad ID from the server is a `DecodeError`, not a `PathParseError`:

    >>> decode_document_id('_design/foo')
    DocumentId('design', DocumentName('foo'))
    >>> decode_document_id('_nope')
    Traceback (most recent call last):
      ...
    upholstery.errors.DecodeError: bad document ID: '_nope'

    """
    if not isinstance(value, str):
        raise DecodeError('document ID must be a string; got {!r}'.format(value))
    try:
        return DocumentId.parse(value)
    except PathParseError as e:
        raise DecodeError('bad document ID: {!r}'.format(value)) from e


def decode_database_name(value):
    if not isinstance(value, str):
        raise DecodeError('database name must be a string; got {!r}'.format(value))
    try:
        return DatabaseName(value)
    except PathParseError as e:
        raise DecodeError('bad database name: {!r}'.format(value)) from e


class Database(namedtuple('Database', (
        'db_name doc_count doc_del_count update_seq purge_seq compact_running '
        'disk_size data_size instance_start_time disk_format_version '
        'committed_update_seq'))):
    """
    Response to ``GET /db``.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'database'
        obj = _object(obj, what)
        return cls(
            decode_database_name(_field(obj, 'db_name', str, what)),
            _field(obj, 'doc_count', int, what),
            _field(obj, 'doc_del_count', int, what),
            _field(obj, 'update_seq', SEQ_TYPES, what),
            _field(obj, 'purge_seq', SEQ_TYPES, what, True),
            _field(obj, 'compact_running', bool, what, True, False),
            _field(obj, 'disk_size', int, what, True),
            _field(obj, 'data_size', int, what, True),
            _field(obj, 'instance_start_time', str, what, True),
            _field(obj, 'disk_format_version', int, what, True),
            _field(obj, 'committed_update_seq', SEQ_TYPES, what, True),
        )


class Version(namedtuple('Version', 'major minor patch')):
    """
    A server version number.

    >>> Version.parse('2.3.1')
    Version(major=2, minor=3, patch=1)
    >>> str(Version.parse('1.6.1'))
    '1.6.1'

    """

    __slots__ = ()

    @classmethod
    def parse(cls, text):
        if not isinstance(text, str):
            raise DecodeError('version must be a string; got {!r}'.format(text))
        match = VERSION_RE.match(text)
        if match is None:
            raise DecodeError('bad version: {!r}'.format(text))
        return cls(*(int(g) for g in match.groups()))

    def __str__(self):
        return '{}.{}.{}'.format(*self)


class Vendor(namedtuple('Vendor', 'name version')):
    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'vendor'
        obj = _object(obj, what)
        return cls(
            _field(obj, 'name', str, what),
            _field(obj, 'version', str, what, True),
        )


class Root(namedtuple('Root', 'couchdb version uuid vendor features')):
    """
    Response to ``GET /``, the server's welcome message.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'root'
        obj = _object(obj, what)
        vendor = _field(obj, 'vendor', dict, what, True)
        features = _field(obj, 'features', list, what, True)
        return cls(
            _field(obj, 'couchdb', str, what),
            Version.parse(_field(obj, 'version', str, what)),
            _field(obj, 'uuid', str, what, True),
            (None if vendor is None else Vendor.from_json(vendor)),
            (None if features is None else tuple(features)),
        )


class EmbeddedAttachment(namedtuple('EmbeddedAttachment',
        'content_type data digest length revpos stub')):
    """
    An attachment as it appears in a document's ``_attachments``.

    Unless the document was retrieved with ``attachments=True``, CouchDB only
    sends a stub and *data* is ``None``.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'attachment'
        obj = _object(obj, what)
        data = _field(obj, 'data', str, what, True)
        if data is not None:
            try:
                data = b64decode(data.encode(), validate=True)
            except (ValueError, Base64Error) as e:
                raise DecodeError('attachment data is not base64') from e
        return cls(
            _field(obj, 'content_type', str, what),
            data,
            _field(obj, 'digest', str, what, True),
            _field(obj, 'length', int, what, True),
            _field(obj, 'revpos', int, what),
            _field(obj, 'stub', bool, what, True, False),
        )


class Document(namedtuple('Document', 'id rev deleted content attachments')):
    """
    A document: its ID, revision, and the application's own content.

    The ``_id``, ``_rev``, and ``_deleted`` fields are available as attributes
    and are not part of *content*.  Attachment metadata is left out of the
    content too, unless the caller asked for embedded attachments:

    >>> obj = {
    ...     '_id': 'foo',
    ...     '_rev': '1-967a00dff5e02add41819138abb3284d',
    ...     '_attachments': {'a': {'content_type': 'text/plain', 'revpos': 1, 'stub': True}},
    ...     'hello': 'world',
    ... }
    >>> Document.from_json(obj).content
    {'hello': 'world'}

    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj, attachments=False):
        what = 'document'
        obj = _object(obj, what)
        doc_id = decode_document_id(_field(obj, '_id', str, what))
        rev = decode_revision(_field(obj, '_rev', str, what))
        deleted = _field(obj, '_deleted', bool, what, True, False)
        content = dict(
            (key, value) for (key, value) in obj.items()
            if key not in META_FIELDS
        )
        embedded = {}
        if attachments and '_attachments' in obj:
            raw = _field(obj, '_attachments', dict, what)
            content['_attachments'] = raw
            for (name, att) in raw.items():
                embedded[name] = EmbeddedAttachment.from_json(att)
        return cls(doc_id, rev, deleted, content, embedded)


class WriteResult(namedtuple('WriteResult', 'id rev')):
    """
    The ``(id, rev)`` pair CouchDB returns after writing a document.

    The order is fixed: it always unpacks as ``(doc_id, rev)``.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'write response'
        obj = _object(obj, what)
        return cls(
            decode_document_id(_field(obj, 'id', str, what)),
            decode_revision(_field(obj, 'rev', str, what)),
        )


class ViewFunction(namedtuple('ViewFunction', 'map reduce')):
    """
    The map function, and optional reduce function, for a single view.

    Use `ViewFunctionBuilder` to build one.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'view function'
        obj = _object(obj, what)
        return cls(
            _field(obj, 'map', str, what),
            _field(obj, 'reduce', str, what, True),
        )

    def to_json(self):
        obj = {'map': self.map}
        if self.reduce is not None:
            obj['reduce'] = self.reduce
        return obj


class ViewFunctionBuilder:
    """
    Accumulate the parts of a `ViewFunction`.

    >>> ViewFunctionBuilder('function(doc) { emit(doc.type, null); }').reduce('_count').finish()
    ViewFunction(map='function(doc) { emit(doc.type, null); }', reduce='_count')

    """

    def __init__(self, map_source=None):
        self._map = map_source
        self._reduce = None

    def map(self, source):
        self._map = source
        return self

    def reduce(self, source):
        self._reduce = source
        return self

    def finish(self):
        if not isinstance(self._map, str) or not self._map.strip():
            raise ValueError(
                'view function needs a map function; got {!r}'.format(self._map)
            )
        if self._reduce is not None and not isinstance(self._reduce, str):
            raise TypeError(
                'reduce must be a `str`; got {!r}'.format(self._reduce)
            )
        return ViewFunction(self._map, self._reduce)


class ViewFunctionMap(Mapping):
    """
    Read-only mapping from `ViewName` to `ViewFunction`.

    Lookups also accept a plain ``str``:

    >>> views = ViewFunctionMap({'by_type': ViewFunction('function(doc) {}', None)})
    >>> views['by_type'] is views[ViewName('by_type')]
    True

    """

    __slots__ = ('_views',)

    def __init__(self, views=None):
        self._views = {}
        for (name, func) in (views or {}).items():
            if not isinstance(name, ViewName):
                name = ViewName(name)
            if not isinstance(func, ViewFunction):
                raise TypeError(
                    'view {!r} must be a `ViewFunction`; got {!r}'.format(
                        str(name), func
                    )
                )
            if name in self._views:
                raise ValueError(
                    'duplicate view name: {!r}'.format(str(name))
                )
            self._views[name] = func

    @classmethod
    def from_json(cls, obj):
        obj = _object(obj, 'views')
        views = {}
        for (name, func) in obj.items():
            try:
                view_name = ViewName(name)
            except PathParseError as e:
                raise DecodeError('bad view name: {!r}'.format(name)) from e
            views[view_name] = ViewFunction.from_json(func)
        return cls(views)

    def to_json(self):
        return dict(
            (str(name), func.to_json()) for (name, func) in self._views.items()
        )

    def __getitem__(self, key):
        if isinstance(key, str):
            try:
                key = ViewName(key)
            except PathParseError:
                raise KeyError(key)
        return self._views[key]

    def __iter__(self):
        return iter(self._views)

    def __len__(self):
        return len(self._views)

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self._views)


class Design(namedtuple('Design', 'views language')):
    """
    Content of a design document.

    Build one with `DesignBuilder` and store it with the `PutDocument` action
    using ``design.to_json()`` as the content.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'design document'
        obj = _object(obj, what)
        return cls(
            ViewFunctionMap.from_json(_field(obj, 'views', dict, what, True, {})),
            _field(obj, 'language', str, what, True),
        )

    def to_json(self):
        obj = {'views': self.views.to_json()}
        if self.language is not None:
            obj['language'] = self.language
        return obj


class DesignBuilder:
    """
    Accumulate the views of a `Design`.

    >>> design = DesignBuilder().view('by_type', 'function(doc) { emit(doc.type, null); }').finish()
    >>> sorted(design.to_json()['views'])
    ['by_type']

    """

    def __init__(self):
        self._views = []
        self._language = None

    def view(self, name, func):
        """
        Add the view *name*.

        *func* is a `ViewFunction`, a `ViewFunctionBuilder`, or the source of
        a map function.
        """
        self._views.append((name, func))
        return self

    def language(self, language):
        self._language = language
        return self

    def finish(self):
        views = {}
        for (name, func) in self._views:
            if not isinstance(name, ViewName):
                name = ViewName(name)
            if name in views:
                raise ValueError('duplicate view name: {!r}'.format(str(name)))
            if isinstance(func, str):
                func = ViewFunctionBuilder(func)
            if isinstance(func, ViewFunctionBuilder):
                func = func.finish()
            views[name] = func
        if self._language is not None and not isinstance(self._language, str):
            raise TypeError(
                'language must be a `str`; got {!r}'.format(self._language)
            )
        return Design(ViewFunctionMap(views), self._language)


class ViewRow(namedtuple('ViewRow', 'id key value doc error')):
    """
    One row of a view result.

    Rows from a reduce have no *id*; *doc* is only present when the view was
    queried with ``include_docs=True``; *error* is set for rows CouchDB
    couldn't find when querying by ``keys``.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'view row'
        obj = _object(obj, what)
        doc_id = _field(obj, 'id', str, what, True)
        return cls(
            (None if doc_id is None else decode_document_id(doc_id)),
            obj.get('key'),
            obj.get('value'),
            obj.get('doc'),
            _field(obj, 'error', str, what, True),
        )


class ViewResult(namedtuple('ViewResult', 'total_rows offset rows update_seq')):
    """
    Response from executing a view.

    CouchDB omits *total_rows* and *offset* for reduced results.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'view result'
        obj = _object(obj, what)
        return cls(
            _field(obj, 'total_rows', int, what, True),
            _field(obj, 'offset', int, what, True),
            tuple(ViewRow.from_json(row) for row in _list(obj, 'rows', what)),
            _field(obj, 'update_seq', SEQ_TYPES, what, True),
        )


class ChangeItem(namedtuple('ChangeItem', 'rev')):
    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        obj = _object(obj, 'change item')
        return cls(decode_revision(_field(obj, 'rev', str, 'change item')))


class ChangeResult(namedtuple('ChangeResult', 'seq id changes deleted doc')):
    """
    One entry in the changes feed.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'change'
        obj = _object(obj, what)
        return cls(
            _field(obj, 'seq', SEQ_TYPES, what),
            decode_document_id(_field(obj, 'id', str, what)),
            tuple(ChangeItem.from_json(c) for c in _list(obj, 'changes', what)),
            _field(obj, 'deleted', bool, what, True, False),
            _field(obj, 'doc', dict, what, True),
        )


class Changes(namedtuple('Changes', 'last_seq results pending')):
    """
    Response from the changes feed.
    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        what = 'changes'
        obj = _object(obj, what)
        return cls(
            _field(obj, 'last_seq', SEQ_TYPES, what),
            tuple(ChangeResult.from_json(r) for r in _list(obj, 'results', what)),
            _field(obj, 'pending', int, what, True),
        )
