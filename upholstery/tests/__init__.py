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
Fakes and sample data shared by the `upholstery` unit tests.
"""

from degu.client import Response

import upholstery
from upholstery.actions import dumps


REV1 = '1-967a00dff5e02add41819138abb3284d'
REV2 = '2-4f54ab3740f3104eec1cf2ec2b0327ed'

ROOT = {
    'couchdb': 'Welcome',
    'version': '1.6.1',
    'uuid': '85fb71bf700c17267fef77535820e371',
    'vendor': {'name': 'The Apache Software Foundation', 'version': '1.6.1'},
}


class FakeBody:
    def __init__(self, data):
        self.__data = data

    def read(self):
        return self.__data


def json_response(status, reason, obj, headers=None):
    data = dumps(obj).encode()
    return Response(status, reason, ({} if headers is None else headers),
        FakeBody(data)
    )


def head_response(status, reason, headers=None):
    return Response(status, reason, ({} if headers is None else headers), None)


class FakeConnection:
    def __init__(self, client):
        self.client = client
        self.closed = False

    def request(self, method, uri, headers, body):
        self.client.requests.append((method, uri, headers, body))
        response = self.client.responses.pop(0)
        if isinstance(response, Exception):
            self.closed = True
            raise response
        return response


class FakeClient:
    """
    Stands in for a `degu.client.Client`, replaying canned responses.

    Any exception in *responses* is raised by the connection instead, and the
    connection is then closed, as a real degu connection would be.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.connections = 0

    def connect(self):
        self.connections += 1
        return FakeConnection(self)


def fake_server(*responses, env=None):
    server = upholstery.Server(env)
    server.ctx.client = FakeClient(*responses)
    return server


def fake_database(name, *responses, env=None):
    db = upholstery.Database(name, env)
    db.ctx.client = FakeClient(*responses)
    return db


