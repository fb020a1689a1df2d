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
`upholstery` - typed fabric for a lightweight Couch.

Upholstery is a typed access layer for the CouchDB HTTP API.  Names, paths,
and revisions are validated values, each server capability is an action that
builds its own request and decodes its own response, and every failure is one
of a small family of exceptions rooted at `Error`.

For example:

>>> from upholstery import Server, DatabasePath, PutDatabase
>>> server = Server('http://localhost:5984/')
>>> server.run(PutDatabase(DatabasePath('mydb')))  #doctest: +SKIP

The `Database` class has shortcut methods for the common actions:

>>> db = server.database('mydb')
>>> db.save({'hello': 'world'})  #doctest: +SKIP
WriteResult(id=DocumentId('normal', DocumentName('...')), rev=Revision('1-...'))
"""

from base64 import b64encode
from urllib.parse import urlparse, urlencode, ParseResult
import ssl
import threading
import platform
import logging

from degu.client import Client, SSLClient, build_client_sslctx

from .errors import (
    Error, PathParseError, DecodeError, TransportError, Nok, HTTPError,
    BadRequest, ServerError, Unauthorized, Forbidden, NotFound,
    MethodNotAllowed, NotAcceptable, Conflict, PreconditionFailed,
    BadContentType, ExpectationFailed, InternalServerError, errors,
)
from .names import (
    DatabaseName, DocumentName, ViewName, DocumentId, random_document_id,
)
from .paths import DatabasePath, DocumentPath, DesignDocumentPath, ViewPath
from .revision import Revision
from .dbtype import (
    Database as DatabaseInfo, Root, Vendor, Version, EmbeddedAttachment,
    Document, WriteResult, ViewFunction, ViewFunctionBuilder,
    ViewFunctionMap, Design, DesignBuilder, ViewRow, ViewResult, ChangeItem,
    ChangeResult, Changes,
)
from .actions import (
    Request, Action, GetRoot, GetAllDatabases, GetDatabase, PutDatabase,
    HeadDatabase, DeleteDatabase, PostDatabase, GetDocument, PutDocument,
    HeadDocument, DeleteDocument, GetView, GetChanges, dumps,
)


__all__ = (
    'Server',
    'Database',
    'Context',

    'DatabaseName',
    'DocumentName',
    'ViewName',
    'DocumentId',
    'DatabasePath',
    'DocumentPath',
    'DesignDocumentPath',
    'ViewPath',
    'Revision',

    'GetRoot',
    'GetAllDatabases',
    'GetDatabase',
    'PutDatabase',
    'HeadDatabase',
    'DeleteDatabase',
    'PostDatabase',
    'GetDocument',
    'PutDocument',
    'HeadDocument',
    'DeleteDocument',
    'GetView',
    'GetChanges',

    'ViewFunctionBuilder',
    'DesignBuilder',

    'Error',
    'PathParseError',
    'DecodeError',
    'TransportError',
    'HTTPError',
    'BadRequest',
    'ServerError',
    'Unauthorized',
    'Forbidden',
    'NotFound',
    'MethodNotAllowed',
    'NotAcceptable',
    'Conflict',
    'PreconditionFailed',
    'BadContentType',
    'ExpectationFailed',
    'InternalServerError',
)

__version__ = '16.10.0'
log = logging.getLogger()
USER_AGENT = 'Upholstery/{} ({}; {})'.format(__version__,
    platform.system(), platform.machine()
)

HTTP_IPv4_URL = 'http://127.0.0.1:5984/'
HTTPS_IPv4_URL = 'https://127.0.0.1:6984/'
HTTP_IPv6_URL = 'http://[::1]:5984/'
HTTPS_IPv6_URL = 'https://[::1]:6984/'
URL_CONSTANTS = (
    HTTP_IPv4_URL,
    HTTPS_IPv4_URL,
    HTTP_IPv6_URL,
    HTTPS_IPv6_URL,
)
DEFAULT_URL = HTTP_IPv4_URL


def create_client(url, **options):
    """
    Convenience function to create a `degu.client.Client` from a URL.

    For example:

    >>> create_client('http://www.example.com/')
    Client(('www.example.com', 80))

    """
    t = (url if isinstance(url, ParseResult) else urlparse(url))
    if t.scheme != 'http':
        raise ValueError("scheme must be 'http', got {!r}".format(t.scheme))
    port = (80 if t.port is None else t.port)
    return Client((t.hostname, port), **options)


def create_sslclient(sslctx, url, **options):
    """
    Convenience function to create an `SSLClient` from a URL.
    """
    t = (url if isinstance(url, ParseResult) else urlparse(url))
    if t.scheme != 'https':
        raise ValueError("scheme must be 'https', got {!r}".format(t.scheme))
    port = (443 if t.port is None else t.port)
    return SSLClient(sslctx, (t.hostname, port), **options)


def basic_auth_header(basic):
    """
    Build the value of an HTTP Basic ``authorization`` header.

    >>> basic_auth_header({'username': 'Aladdin', 'password': 'open sesame'})
    'Basic QWxhZGRpbjpvcGVuIHNlc2FtZQ=='

    """
    b = '{username}:{password}'.format(**basic).encode()
    return 'Basic ' + b64encode(b).decode()


def build_ssl_context(config):
    if 'context' in config:
        ctx = config['context']
        if not isinstance(ctx, ssl.SSLContext):
            raise TypeError(
                'ssl context must be an `ssl.SSLContext`; got {!r}'.format(ctx)
            )
        if ctx.verify_mode != ssl.CERT_REQUIRED:
            raise ValueError('ssl context must use ssl.CERT_REQUIRED')
        return ctx
    return build_client_sslctx(config)


class Context:
    """
    Share a configuration and thread-local connections between objects.

    Each thread gets its own ``degu.client.Connection``, which is reused for
    every request that thread dispatches through this `Context`.  To reuse
    connections among several `Server` and `Database` instances, create them
    with the same `Context`:

    >>> ctx = Context('http://localhost:5984/')
    >>> foo = Database('foo', ctx=ctx)
    >>> bar = Database('bar', ctx=ctx)
    >>> foo.ctx is bar.ctx
    True

    The *env* is either a URL or a ``dict`` with a ``'url'`` key and optional
    ``'basic'`` and ``'ssl'`` keys:

    >>> ctx = Context({'url': 'http://localhost:5984/couch', 'basic': {'username': 'joe', 'password': 'secret'}})
    >>> ctx.basepath
    '/couch/'

    """

    __slots__ = ('env', 'basepath', 't', 'url', 'threadlocal', 'client')

    def __init__(self, env=None):
        if env is None:
            env = DEFAULT_URL
        if not isinstance(env, (dict, str)):
            raise TypeError(
                'env must be a `dict` or `str`; got {!r}'.format(env)
            )
        self.env = ({'url': env} if isinstance(env, str) else env)
        url = self.env.get('url', DEFAULT_URL)
        t = urlparse(url)
        if t.scheme not in ('http', 'https'):
            raise ValueError(
                'url scheme must be http or https; got {!r}'.format(url)
            )
        if not t.netloc:
            raise ValueError('bad url: {!r}'.format(url))
        self.basepath = (t.path if t.path.endswith('/') else t.path + '/')
        self.t = t
        self.url = self.full_url(self.basepath)
        self.threadlocal = threading.local()
        if t.scheme == 'https':
            sslconfig = self.env.get('ssl', {})
            sslctx = build_ssl_context(sslconfig)
            self.client = create_sslclient(sslctx, self.t)
        else:
            self.client = create_client(self.t)

    def full_url(self, path):
        return ''.join([self.t.scheme, '://', self.t.netloc, path])

    def get_threadlocal_connection(self):
        conn = getattr(self.threadlocal, 'connection', None)
        if conn is None or conn.closed:
            conn = self.client.connect()
            self.threadlocal.connection = conn
        return conn

    def get_auth_headers(self):
        if 'basic' in self.env:
            return {'authorization': basic_auth_header(self.env['basic'])}
        return {}

    def build_uri(self, request):
        """
        Join a `Request` path and query onto the base path.
        """
        path = self.basepath + request.path[1:]
        if request.query:
            return '?'.join([path, urlencode(request.query)])
        return path


class CouchBase:
    """
    Base class for `Server` and `Database`.

    Both dispatch actions with `CouchBase.run()`:

    >>> s = Server('http://localhost:5984/')
    >>> s.run(GetRoot())  #doctest: +SKIP
    Root(couchdb='Welcome', version=Version(major=1, minor=6, patch=1), ...)

    """

    def __init__(self, env=None, ctx=None):
        self.ctx = (Context(env) if ctx is None else ctx)
        self.env = self.ctx.env
        self.basepath = self.ctx.basepath
        self.url = self.ctx.url

    def raw_request(self, method, uri, body, headers):
        conn = self.ctx.get_threadlocal_connection()
        # A closed keep-alive connection gets exactly one resend:
        try:
            return conn.request(method, uri, headers, body)
        except ConnectionError as e:
            log.warning('reconnecting after %r: %s %s', e, method, uri)
        conn = self.ctx.get_threadlocal_connection()
        return conn.request(method, uri, headers, body)

    def run(self, action):
        """
        Dispatch *action* and return its decoded result.

        Errors from the HTTP layer, including the `ValueError` degu raises for a
        malformed response, are raised as `TransportError`; everything else is
        raised by `Action.decode()`.
        """
        request = action.build_request()
        uri = self.ctx.build_uri(request)
        headers = {'user-agent': USER_AGENT}
        headers.update(request.headers)
        headers.update(self.ctx.get_auth_headers())
        log.debug('%s %s', request.method, uri)
        try:
            response = self.raw_request(
                request.method, uri, request.body, headers
            )
            data = (b'' if response.body is None else response.body.read())
        except (OSError, ValueError) as e:
            raise TransportError(
                e, request.method, self.ctx.full_url(uri)
            ) from e
        return action.decode(
            response.status, response.reason, response.headers, data
        )


class Server(CouchBase):
    """
    `CouchBase.run()` plus some server-specific niceties.

    For example:

    >>> s = Server('http://localhost:5984/')
    >>> s
    Server('http://localhost:5984/')
    >>> s.url
    'http://localhost:5984/'
    >>> s.basepath
    '/'

    """

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.url)

    def get_root(self):
        return self.run(GetRoot())

    def all_dbs(self):
        """
        Return a `DatabaseName` for each database, skipping system databases.
        """
        return self.run(GetAllDatabases())

    def database(self, name, ensure=False):
        """
        Create a `Database` with the same `Context` as this `Server`.
        """
        db = Database(name, ctx=self.ctx)
        if ensure:
            db.ensure()
        return db


class Database(CouchBase):
    """
    `CouchBase.run()` plus shortcuts for the database and document actions.

    For example:

    >>> db = Database('dmedia', 'http://localhost:5984/')
    >>> db
    Database('dmedia', 'http://localhost:5984/')
    >>> db.name
    DatabaseName('dmedia')
    >>> db.path
    DatabasePath('dmedia')

    Document methods take a document ID as a `DocumentId` or a ``str`` such as
    ``'_design/foo'``.
    """

    def __init__(self, name, env=None, ctx=None):
        super().__init__(env, ctx)
        self.path = DatabasePath(name)
        self.name = self.path.database_name

    def __repr__(self):
        return '{}({!r}, {!r})'.format(
            self.__class__.__name__, self.name.value, self.url
        )

    def server(self):
        """
        Create a `Server` with the same `Context` as this `Database`.
        """
        return Server(ctx=self.ctx)

    def get(self):
        return self.run(GetDatabase(self.path))

    def put(self):
        return self.run(PutDatabase(self.path))

    def head(self):
        return self.run(HeadDatabase(self.path))

    def delete(self):
        return self.run(DeleteDatabase(self.path))

    def ensure(self):
        """
        Ensure the database exists.

        This method will attempt to create the database, and will handle the
        `PreconditionFailed` exception raised if the database already exists.

        Returns ``True`` if the database was created.
        """
        try:
            self.put()
        except PreconditionFailed:
            return False
        log.info('created database %r', self)
        return True

    def post(self, content):
        return self.run(PostDatabase(self.path, content))

    def save(self, doc):
        """
        POST *doc* to CouchDB, update its ``_id`` and ``_rev`` in place.

        For example:

        >>> db = Database('foo')
        >>> doc = {'_id': 'bar'}
        >>> db.save(doc)  #doctest: +SKIP
        WriteResult(id=DocumentId('normal', DocumentName('bar')), rev=Revision('1-967a00dff5e02add41819138abb3284d'))
        >>> doc  #doctest: +SKIP
        {'_rev': '1-967a00dff5e02add41819138abb3284d', '_id': 'bar'}

        If *doc* has no ``_id``, one is generated with `random_document_id()`.
        """
        if '_id' not in doc:
            doc['_id'] = str(random_document_id())
        result = self.post(doc)
        doc['_rev'] = str(result.rev)
        return result

    def get_doc(self, doc_id, **options):
        return self.run(GetDocument(self.path.document(doc_id), **options))

    def put_doc(self, doc_id, content, rev=None):
        return self.run(PutDocument(self.path.document(doc_id), content, rev))

    def head_doc(self, doc_id, if_none_match=None):
        return self.run(
            HeadDocument(self.path.document(doc_id), if_none_match)
        )

    def delete_doc(self, doc_id, rev):
        return self.run(DeleteDocument(self.path.document(doc_id), rev))

    def view(self, design, view, **options):
        """
        Shortcut for `GetView` on a view in this database.

        For example:

        >>> db = Database('dmedia')
        >>> db.view('file', 'stored', key='foo')  #doctest: +SKIP

        """
        return self.run(GetView(self.path.view(design, view), **options))

    def changes(self, **options):
        return self.run(GetChanges(self.path, **options))
