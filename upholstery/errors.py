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
The closed set of errors raised by `upholstery`.

Every failure that can happen while building a request or dispatching an
action is reported as exactly one of these:

    * `PathParseError` - a name, document ID, or path failed validation
      before any request was made

    * `DecodeError` - a response (or a revision the server sent) didn't have
      the expected shape

    * `TransportError` - the underlying HTTP client failed; its
      exception is kept in ``cause`` and as ``__cause__``

    * `BadRequest` - the server answered with 400 Bad Request

    * `ServerError` - the server answered with any other non-2xx status

`BadRequest` and `ServerError` share the `HTTPError` base class.  The
`ServerError` subclasses (`NotFound`, `Conflict`, etc.) exist so callers can
catch the statuses CouchDB documents without inspecting ``status``, but they
are all still a `ServerError`.
"""

import json
from collections import namedtuple


class Error(Exception):
    """
    Base class for all `upholstery` errors.
    """


class PathParseError(Error, ValueError):
    """
    Raised when a name, document ID, or path is not valid.
    """

    def __init__(self, msg, text):
        self.msg = msg
        self.text = text
        super().__init__('{}: {!r}'.format(msg, text))


class DecodeError(Error, ValueError):
    """
    Raised when a server response doesn't match the expected shape.
    """

    def __init__(self, context):
        self.context = context
        super().__init__(context)


class TransportError(Error):
    """
    Raised when the HTTP client fails to complete a request.
    """

    def __init__(self, cause, method, url):
        self.cause = cause
        self.method = method
        self.url = url
        super().__init__()

    def __str__(self):
        return '{}: {} {}'.format(
            self.cause.__class__.__name__, self.method, self.url
        )


class Nok(namedtuple('Nok', 'error reason')):
    """
    The JSON body CouchDB sends with an error response.

    For example:

    >>> Nok.from_json({'error': 'not_found', 'reason': 'missing'})
    Nok(error='not_found', reason='missing')

    """

    __slots__ = ()

    @classmethod
    def from_json(cls, obj):
        if not isinstance(obj, dict):
            raise DecodeError(
                'error response must be an object; got {!r}'.format(obj)
            )
        error = obj.get('error')
        reason = obj.get('reason')
        if not isinstance(error, str):
            raise DecodeError('error response has no "error" string')
        if not isinstance(reason, str):
            raise DecodeError('error response has no "reason" string')
        return cls(error, reason)


def decode_nok(data):
    """
    Return a `Nok` decoded from *data*, or ``None`` if it isn't one.

    CouchDB (or a proxy in front of it) can answer with a body that isn't JSON
    at all, in which case the raw bytes are still available as
    `HTTPError.data`.

    >>> decode_nok(b'{"error":"conflict","reason":"Document update conflict."}')
    Nok(error='conflict', reason='Document update conflict.')
    >>> decode_nok(b'<html>Bad Gateway</html>') is None
    True

    """
    if not data:
        return None
    try:
        obj = json.loads(data.decode())
    except ValueError:
        return None
    try:
        return Nok.from_json(obj)
    except DecodeError:
        return None


class HTTPError(Error):
    """
    Base class for errors raised based on HTTP response status.
    """

    def __init__(self, status, reason, method, url, data=b'', body=None):
        self.status = status
        self.reason = reason
        self.method = method
        self.url = url
        self.data = data
        self.body = body
        super().__init__()

    def __str__(self):
        msg = '{} {}: {} {}'.format(
            self.status, self.reason, self.method, self.url
        )
        if self.body is None:
            return msg
        return '{} ({}: {})'.format(msg, self.body.error, self.body.reason)


class BadRequest(HTTPError):
    '400 Bad Request'


class ServerError(HTTPError):
    """
    Raised for any non-2xx status other than 400 Bad Request.
    """


class Unauthorized(ServerError):
    '401 Unauthorized'

class Forbidden(ServerError):
    '403 Forbidden'

class NotFound(ServerError):
    '404 Not Found'

class MethodNotAllowed(ServerError):
    '405 Method Not Allowed'

class NotAcceptable(ServerError):
    '406 Not Acceptable'

class Conflict(ServerError):
    '409 Conflict'

class PreconditionFailed(ServerError):
    '412 Precondition Failed'

class BadContentType(ServerError):
    '415 Unsupported Media Type'

class ExpectationFailed(ServerError):
    '417 Expectation Failed'

class InternalServerError(ServerError):
    '500 Internal Server Error'


errors = {
    400: BadRequest,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    405: MethodNotAllowed,
    406: NotAcceptable,
    409: Conflict,
    412: PreconditionFailed,
    415: BadContentType,
    417: ExpectationFailed,
    500: InternalServerError,
}


def http_error(status, reason, method, url, data=b''):
    """
    Build the `HTTPError` for a non-2xx response.

    A HEAD response never has a body, so for HEAD the error is always built
    with ``body=None`` and *data* is ignored:

    >>> e = http_error(401, 'Unauthorized', 'HEAD', '/db/doc')
    >>> (e.__class__.__name__, e.status, e.body)
    ('Unauthorized', 401, None)

    """
    klass = errors.get(status, ServerError)
    if method == 'HEAD':
        return klass(status, reason, method, url)
    return klass(status, reason, method, url, data, decode_nok(data))
