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
Actions: one typed operation per CouchDB capability.

An action turns typed inputs into a `Request` and turns the status, headers,
and body of the response into a typed result or an `upholstery.errors.Error`.
Building the request can't fail once the inputs are typed values, and
decoding is a pure function of the response, so actions can be tested without
a server and dispatched by any transport:

>>> action = GetDocument(DocumentPath('db', '_design/foo'), rev=Revision('2-ABC'))
>>> action.build_request()
Request(method='GET', path='/db/_design/foo', query=(('rev', '2-abc'),), headers={'accept': 'application/json'}, body=None)

No action retries anything.  `upholstery.Server.run()` dispatches an action
over HTTP.
"""

import json
from collections import namedtuple
from datetime import timedelta
from urllib.parse import urlencode

from .errors import DecodeError, http_error
from .names import Name, DocumentId, DatabaseName
from .paths import Path, DatabasePath, DocumentPath, ViewPath
from .revision import Revision
from .dbtype import (
    Database, Root, Document, Design, WriteResult, ViewResult, ChangeResult,
    Changes, decode_database_name,
)


Request = namedtuple('Request', 'method path query headers body')

JSON_ACCEPT = {'accept': 'application/json'}
JSON_CONTENT_TYPE = 'application/json'

FEEDS = ('normal', 'longpoll', 'continuous')

VIEW_OPTIONS = frozenset([
    'key',
    'keys',
    'startkey',
    'endkey',
    'startkey_docid',
    'endkey_docid',
    'limit',
    'skip',
    'descending',
    'group',
    'group_level',
    'reduce',
    'include_docs',
    'inclusive_end',
    'update_seq',
    'stale',
])


def dumps(obj, pretty=False):
    """
    Safe and opinionated use of ``json.dumps()``.

    This function always calls ``json.dumps()`` with *ensure_ascii=False* and
    *sort_keys=True*.

    For example:

    >>> doc = {
    ...     'hello': 'мир',
    ...     'welcome': 'все',
    ... }
    >>> dumps(doc)
    '{"hello":"мир","welcome":"все"}'

    By default compact encoding is used, but if you supply *pretty=True*,
    4-space indentation will be used:

    >>> print(dumps(doc, pretty=True))
    {
        "hello": "мир",
        "welcome": "все"
    }

    """
    if pretty:
        return json.dumps(obj,
            ensure_ascii=False,
            sort_keys=True,
            separators=(',',': '),
            indent=4,
        )
    return json.dumps(obj,
        ensure_ascii=False,
        sort_keys=True,
        separators=(',',':'),
    )


def load_json(data):
    """
    Decode a JSON response body, raising `DecodeError` if it isn't JSON.
    """
    try:
        return json.loads(data.decode())
    except ValueError as e:
        raise DecodeError('response body is not valid JSON') from e


def _json_body(obj):
    if isinstance(obj, Design):
        obj = obj.to_json()
    return dumps(obj).encode()


def _query_value(value):
    if isinstance(value, (Revision, DocumentId, Name, Path)):
        return str(value)
    return value


def _queryiter(options):
    """
    Return appropriately encoded (key, value) pairs sorted by key.

    We JSON encode the value if the key is "key", "startkey", or "endkey", or
    if the value is not an ``str``.  Typed values (revisions, document IDs,
    names) are sent as their rendered string.
    """
    for key in sorted(options):
        value = _query_value(options[key])
        if key in ('key', 'startkey', 'endkey') or not isinstance(value, str):
            value = json.dumps(value, sort_keys=True, separators=(',',':'))
        yield (key, value)


def heartbeat_param(heartbeat):
    """
    Encode the ``heartbeat`` query parameter of the changes feed.

    ``True`` asks for the server's default period; otherwise the period is a
    ``timedelta`` or a number of milliseconds:

    >>> heartbeat_param(True)
    True
    >>> heartbeat_param(timedelta(seconds=30))
    30000

    """
    if heartbeat is True:
        return True
    if isinstance(heartbeat, timedelta):
        return heartbeat // timedelta(milliseconds=1)
    if isinstance(heartbeat, int) and not isinstance(heartbeat, bool):
        if heartbeat < 0:
            raise ValueError('heartbeat must be >= 0; got {!r}'.format(heartbeat))
        return heartbeat
    raise TypeError(
        'heartbeat must be True, a `timedelta`, or an `int`; got {!r}'.format(
            heartbeat
        )
    )


def _database_path(path):
    if isinstance(path, DatabasePath):
        return path
    if isinstance(path, DatabaseName):
        return DatabasePath(path)
    return DatabasePath.parse(path)


def _document_path(path):
    if isinstance(path, DocumentPath):
        return path
    return DocumentPath.parse(path)


def _view_path(path):
    if isinstance(path, ViewPath):
        return path
    return ViewPath.parse(path)


def _revision(rev, name='rev'):
    if isinstance(rev, Revision):
        return rev
    raise TypeError('{} must be a `Revision`; got {!r}'.format(name, rev))


class Action:
    """
    Base class for all actions.

    Sub-classes set `Action.method` and implement `Action.render_path()` and
    `Action.decode_success()`; most also override `Action.options()`,
    `Action.headers()`, or `Action.body()`.
    """

    method = None

    def render_path(self):
        raise NotImplementedError(
            '{}.render_path()'.format(self.__class__.__name__)
        )

    def options(self):
        return {}

    def headers(self):
        return dict(JSON_ACCEPT)

    def body(self):
        return None

    def build_request(self):
        headers = self.headers()
        body = self.body()
        if body is not None:
            headers['content-type'] = JSON_CONTENT_TYPE
        return Request(
            self.method,
            self.render_path(),
            tuple(_queryiter(self.options())),
            headers,
            body,
        )

    def url(self):
        """
        Return the rendered path plus query, as used in error messages.
        """
        query = tuple(_queryiter(self.options()))
        path = self.render_path()
        if query:
            return '?'.join([path, urlencode(query)])
        return path

    def decode(self, status, reason, headers, data):
        """
        Decode the response into this action's result, or raise.

        Any 2xx status is handed to `Action.decode_success()`; anything else
        raises the matching `HTTPError`.
        """
        if 200 <= status < 300:
            return self.decode_success(status, headers, data)
        raise http_error(status, reason, self.method, self.url(), data)

    def decode_success(self, status, headers, data):
        raise NotImplementedError(
            '{}.decode_success()'.format(self.__class__.__name__)
        )

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.url())


class GetRoot(Action):
    """
    ``GET /`` - get the server's welcome message as a `Root`.
    """

    method = 'GET'

    def render_path(self):
        return '/'

    def decode_success(self, status, headers, data):
        return Root.from_json(load_json(data))


class GetAllDatabases(Action):
    """
    ``GET /_all_dbs`` - get the names of all databases as `DatabaseName`s.

    System databases such as ``_users`` and ``_replicator`` can't be named by
    a `DatabaseName`, so they are left out:

    >>> GetAllDatabases().decode(200, 'OK', {}, b'["_replicator","_users","foo"]')
    (DatabaseName('foo'),)

    """

    method = 'GET'

    def render_path(self):
        return '/_all_dbs'

    def decode_success(self, status, headers, data):
        obj = load_json(data)
        if not isinstance(obj, list):
            raise DecodeError(
                'database list must be an array; got {!r}'.format(obj)
            )
        return tuple(
            decode_database_name(name) for name in obj
            if not (isinstance(name, str) and name.startswith('_'))
        )


class _DatabaseAction(Action):
    def __init__(self, path):
        self.path = _database_path(path)

    def render_path(self):
        return self.path.render()


class GetDatabase(_DatabaseAction):
    """
    ``GET /db`` - get a `Database` describing the database.
    """

    method = 'GET'

    def decode_success(self, status, headers, data):
        return Database.from_json(load_json(data))


class PutDatabase(_DatabaseAction):
    """
    ``PUT /db`` - create the database.

    Raises `PreconditionFailed` if the database already exists.
    """

    method = 'PUT'

    def decode_success(self, status, headers, data):
        load_json(data)


class HeadDatabase(_DatabaseAction):
    """
    ``HEAD /db`` - check that the database exists.

    Raises `NotFound` (with no body) if it doesn't.
    """

    method = 'HEAD'

    def headers(self):
        return {}

    def decode_success(self, status, headers, data):
        return None


class DeleteDatabase(_DatabaseAction):
    """
    ``DELETE /db`` - delete the database.
    """

    method = 'DELETE'

    def decode_success(self, status, headers, data):
        load_json(data)


class PostDatabase(_DatabaseAction):
    """
    ``POST /db`` - create a document, returning ``(doc_id, rev)``.

    If *content* has no ``_id``, CouchDB picks one.
    """

    method = 'POST'

    def __init__(self, path, content):
        super().__init__(path)
        self.content = content

    def body(self):
        return _json_body(self.content)

    def decode_success(self, status, headers, data):
        return WriteResult.from_json(load_json(data))


class GetDocument(Action):
    """
    ``GET /db/doc`` - get a `Document`.

    :param rev: a `Revision` to get instead of the current one
    :param attachments: when ``True``, attachment content is embedded and
        ``_attachments`` is kept in the document content
    :param conflicts: when ``True``, include ``_conflicts`` in the content
    :param if_none_match: a `Revision`; if the document hasn't changed since
        it, the result is ``None``
    """

    method = 'GET'

    def __init__(self, path, rev=None, attachments=False, conflicts=False,
            if_none_match=None):
        self.path = _document_path(path)
        self.rev = (None if rev is None else _revision(rev))
        self.attachments = attachments
        self.conflicts = conflicts
        self.if_none_match = (
            None if if_none_match is None
            else _revision(if_none_match, 'if_none_match')
        )

    def render_path(self):
        return self.path.render()

    def options(self):
        options = {}
        if self.rev is not None:
            options['rev'] = self.rev
        if self.attachments:
            options['attachments'] = True
        if self.conflicts:
            options['conflicts'] = True
        return options

    def headers(self):
        headers = dict(JSON_ACCEPT)
        if self.if_none_match is not None:
            headers['if-none-match'] = self.if_none_match.etag()
        return headers

    def decode(self, status, reason, headers, data):
        if status == 304 and self.if_none_match is not None:
            return None
        return super().decode(status, reason, headers, data)

    def decode_success(self, status, headers, data):
        return Document.from_json(load_json(data), self.attachments)


class PutDocument(Action):
    """
    ``PUT /db/doc`` - create or update a document, returning ``(doc_id, rev)``.

    To update an existing document, pass its current `Revision` as *rev*; it
    is sent in the If-Match header.  *content* can be any JSON-serializable
    object or a `Design`.
    """

    method = 'PUT'

    def __init__(self, path, content, rev=None):
        self.path = _document_path(path)
        self.content = content
        self.rev = (None if rev is None else _revision(rev))

    def render_path(self):
        return self.path.render()

    def headers(self):
        headers = dict(JSON_ACCEPT)
        if self.rev is not None:
            headers['if-match'] = self.rev.etag()
        return headers

    def body(self):
        return _json_body(self.content)

    def decode_success(self, status, headers, data):
        return WriteResult.from_json(load_json(data))


class HeadDocument(Action):
    """
    ``HEAD /db/doc`` - get the document's current `Revision` from its ETag.

    If *if_none_match* is given and the document hasn't changed since that
    revision, the result is ``None``.
    """

    method = 'HEAD'

    def __init__(self, path, if_none_match=None):
        self.path = _document_path(path)
        self.if_none_match = (
            None if if_none_match is None
            else _revision(if_none_match, 'if_none_match')
        )

    def render_path(self):
        return self.path.render()

    def headers(self):
        if self.if_none_match is not None:
            return {'if-none-match': self.if_none_match.etag()}
        return {}

    def decode(self, status, reason, headers, data):
        if status == 304 and self.if_none_match is not None:
            return None
        return super().decode(status, reason, headers, data)

    def decode_success(self, status, headers, data):
        etag = headers.get('etag')
        if etag is None:
            raise DecodeError('HEAD response has no ETag header')
        return Revision.from_etag(etag)


class DeleteDocument(Action):
    """
    ``DELETE /db/doc`` - delete a document, returning the new `Revision`.

    *rev* must be the document's current revision.
    """

    method = 'DELETE'

    def __init__(self, path, rev):
        self.path = _document_path(path)
        self.rev = _revision(rev)

    def render_path(self):
        return self.path.render()

    def headers(self):
        headers = dict(JSON_ACCEPT)
        headers['if-match'] = self.rev.etag()
        return headers

    def decode_success(self, status, headers, data):
        return WriteResult.from_json(load_json(data)).rev


class GetView(Action):
    """
    Execute a view, returning a `ViewResult`.

    Keyword arguments are passed as query parameters (see `VIEW_OPTIONS`).
    The ``key``, ``startkey``, and ``endkey`` values are JSON encoded.  If
    ``keys`` is given, the view is queried with ``POST`` and the keys are sent
    in the request body.
    """

    def __init__(self, path, **options):
        self.path = _view_path(path)
        unknown = set(options) - VIEW_OPTIONS
        if unknown:
            raise TypeError(
                'unexpected view options: {!r}'.format(sorted(unknown))
            )
        self.keys = options.pop('keys', None)
        self.view_options = options

    @property
    def method(self):
        return ('GET' if self.keys is None else 'POST')

    def render_path(self):
        return self.path.render()

    def options(self):
        return dict(self.view_options)

    def body(self):
        if self.keys is None:
            return None
        return _json_body({'keys': list(self.keys)})

    def decode_success(self, status, headers, data):
        return ViewResult.from_json(load_json(data))


class GetChanges(_DatabaseAction):
    """
    ``GET /db/_changes`` - get the changes feed as `Changes`.

    :param feed: ``'normal'``, ``'longpoll'``, or ``'continuous'``
    :param since: sequence to start after, or ``'now'``
    :param heartbeat: ``True`` for the server's default period, or a period
        as a ``timedelta`` or in milliseconds
    :param timeout: milliseconds to wait before the server closes the feed
    :param handler: for the continuous feed, called once with each
        `ChangeResult`; the returned `Changes` then has no results

    With the continuous feed the response body is read to the end (the server
    ends it after *timeout*, or when *limit* is reached) before any result is
    decoded.
    """

    method = 'GET'

    def __init__(self, path, feed=None, since=None, heartbeat=None,
            timeout=None, limit=None, descending=None, include_docs=None,
            handler=None):
        super().__init__(path)
        if feed is not None and feed not in FEEDS:
            raise ValueError(
                'feed must be one of {!r}; got {!r}'.format(FEEDS, feed)
            )
        if handler is not None and feed != 'continuous':
            raise ValueError("handler requires feed='continuous'")
        self.feed = feed
        self.since = since
        self.heartbeat = (None if heartbeat is None else heartbeat_param(heartbeat))
        self.timeout = timeout
        self.limit = limit
        self.descending = descending
        self.include_docs = include_docs
        self.handler = handler

    def render_path(self):
        return self.path.child('_changes')

    def options(self):
        options = {}
        for key in ('feed', 'since', 'heartbeat', 'timeout', 'limit',
                'descending', 'include_docs'):
            value = getattr(self, key)
            if value is not None:
                options[key] = value
        return options

    def decode_success(self, status, headers, data):
        if self.feed == 'continuous':
            return self.decode_continuous(data)
        return Changes.from_json(load_json(data))

    def decode_continuous(self, data):
        results = []
        for line in data.splitlines():
            if not line.strip():
                continue  # Heartbeat
            obj = load_json(line)
            if isinstance(obj, dict) and 'last_seq' in obj:
                tail = Changes.from_json(dict(obj, results=[]))
                return tail._replace(results=tuple(results))
            result = ChangeResult.from_json(obj)
            if self.handler is None:
                results.append(result)
            else:
                self.handler(result)
        raise DecodeError('continuous feed ended without "last_seq"')
