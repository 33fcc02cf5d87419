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
`couchclient` - revision-aware client for a CouchDB-style HTTP/JSON API.

The connection layer in this module (`Context`, `CouchBase`, `Server`,
`Database`) makes it easy to call any part of the REST API directly, while the
entity layer in `couchclient.document` (`Document`, `DesignDocument`) keeps
track of ids, revisions, attachments and views for you:

>>> from couchclient import Server
>>> server = Server('http://127.0.0.1:5984/')
>>> db = server.database('mydb/')
>>> db.create()  #doctest: +SKIP
{'ok': True}
>>> doc = db.new_doc('hello', data={'greeting': 'world'})
>>> doc.create()  #doctest: +SKIP
Document('hello', '1-15f65339921e497348be384867bb940f')

Database names follow the classic naming rule: lowercase letters, digits and
any of ``_$()+-/``, always ending with a ``/`` path separator.
"""

from base64 import b64encode
import json
import re
import threading
import platform
from collections import namedtuple
from urllib.parse import urlparse, urlencode, quote
import logging

import requests
from requests.exceptions import RequestException as TransportError


__all__ = (
    'Server',
    'Database',
    'Context',
    'Transport',
    'Codec',
    'Attachment',
    'BulkResult',

    'valid_dbname',
    'dumps',

    'HTTPError',
    'BadRequest',
    'Unauthorized',
    'Forbidden',
    'NotFound',
    'MethodNotAllowed',
    'NotAcceptable',
    'Conflict',
    'PreconditionFailed',
    'BadContentType',
    'BadRangeRequest',
    'ExpectationFailed',
    'ServerError',

    'UsageError',
    'ValidationError',
    'RevisionConflict',
    'ViewNotFound',
    'ProtocolError',
    'TransportError',
)

__version__ = '26.10.0'
log = logging.getLogger(__name__)
USER_AGENT = 'couchclient/{} (Python {}; {})'.format(__version__,
    platform.python_version(), platform.machine()
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

DESIGN_PREFIX = '_design/'

# Query options the server expects as bare strings, never JSON-encoded:
RAW_OPTIONS = frozenset([
    'endkey_docid',
    'rev',
    'stale',
    'startkey_docid',
])

_DBNAME = re.compile(r'[a-z0-9_$()+\-/]+/')

Attachment = namedtuple('Attachment', 'content_type data')
Codec = namedtuple('Codec', 'encode decode')
BulkResult = namedtuple('BulkResult', 'entity ok rev error reason')


class HTTPError(Exception):
    """
    Base class for exceptions raised based on HTTP response status.
    """

    def __init__(self, response, method, url):
        self.response = response
        self.data = (b'' if response.content is None else response.content)
        self.method = method
        self.url = url
        super().__init__()

    def __str__(self):
        return '{} {}: {} {}'.format(
            self.response.status_code, self.response.reason,
            self.method, self.url
        )


class ClientError(HTTPError):
    """
    Base class for all 4xx Client Error exceptions.
    """


class BadRequest(ClientError):
    '400 Bad Request'

class Unauthorized(ClientError):
    '401 Unauthorized'

class Forbidden(ClientError):
    '403 Forbidden'

class NotFound(ClientError):
    '404 Not Found'

class MethodNotAllowed(ClientError):
    '405 Method Not Allowed'

class NotAcceptable(ClientError):
    '406 Not Acceptable'

class Conflict(ClientError):
    '409 Conflict'

class Gone(ClientError):
    '410 Gone'

class LengthRequired(ClientError):
    '411 Length Required'

class PreconditionFailed(ClientError):
    '412 Precondition Failed'

class BadContentType(ClientError):
    '415 Unsupported Media Type'

class BadRangeRequest(ClientError):
    '416 Requested Range Not Satisfiable'

class ExpectationFailed(ClientError):
    '417 Expectation Failed'


class ServerError(HTTPError):
    """
    Used to raise exceptions for any 5xx Server Errors.
    """


errors = {
    400: BadRequest,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    405: MethodNotAllowed,
    406: NotAcceptable,
    409: Conflict,
    410: Gone,
    411: LengthRequired,
    412: PreconditionFailed,
    415: BadContentType,
    416: BadRangeRequest,
    417: ExpectationFailed,
}


class LocalError:
    """
    Mixin for `HTTPError` subclasses raised without making any request.

    These let callers handle a conflict or a missing view the same way whether
    the server or the local handle detected it.
    """

    def __init__(self, msg):
        self.response = None
        self.data = b''
        self.method = None
        self.url = None
        Exception.__init__(self, msg)

    def __str__(self):
        return self.args[0]


class RevisionConflict(LocalError, Conflict):
    """
    Raised when a handle's lifecycle state rules out the operation.

    For example, calling ``create()`` on a document that already holds a
    revision, or ``delete()`` on a document that was already deleted.
    """


class ViewNotFound(LocalError, NotFound):
    """
    Raised when querying a view the design document doesn't define.
    """

    def __init__(self, docid, view):
        self.docid = docid
        self.view = view
        super().__init__('{!r} has no view {!r}'.format(docid, view))


class UsageError(ValueError):
    """
    Raised when a call can't be made given the handle's current state.
    """


class ValidationError(UsageError):
    """
    Raised when a database name or document id breaks the naming rules.
    """


class ProtocolError(Exception):
    """
    Raised when a response body isn't what the operation expects.
    """


def valid_dbname(name):
    """
    Return True if *name* is a valid database name.

    A valid name uses only lowercase letters, digits and ``_$()+-/``, and ends
    with a ``/``:

    >>> valid_dbname('abc_$()+-/0123456789/')
    True
    >>> valid_dbname('abc')
    False
    >>> valid_dbname('Abc/')
    False

    """
    return isinstance(name, str) and _DBNAME.fullmatch(name) is not None


def check_dbname(name):
    if not valid_dbname(name):
        raise ValidationError('invalid database name: {!r}'.format(name))
    return name


def escape_dbname(name):
    """
    Escape *name* for use as the database component of a path.

    Any ``/`` inside the name is escaped, the trailing ``/`` is kept as the
    path separator:

    >>> escape_dbname('accounts/eu/')
    'accounts%2Feu/'

    """
    if name.endswith('/'):
        name = name[:-1]
    return quote(name, safe='') + '/'


def escape_docid(docid):
    """
    Escape *docid*, leaving the ``_design/`` prefix of design docs intact.

    >>> escape_docid('_design/by type')
    '_design/by%20type'
    >>> escape_docid('a/b')
    'a%2Fb'

    """
    if docid.startswith(DESIGN_PREFIX):
        return DESIGN_PREFIX + quote(docid[len(DESIGN_PREFIX):], safe='')
    return quote(docid, safe='')


def escape_attname(name):
    return quote(name, safe='')


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


json_codec = Codec(dumps, json.loads)


def _json_body(obj, encode=dumps):
    if obj is None:
        return None
    if isinstance(obj, bytes):
        return obj
    return encode(obj).encode()


def encode_attachment(attachment):
    """
    Encode *attachment* for use in ``doc['_attachments']``.

    For example:

    >>> attachment = Attachment('image/png', b'PNG data')
    >>> dumps(encode_attachment(attachment))
    '{"content_type":"image/png","data":"UE5HIGRhdGE=","length":8}'

    :param attachment: an `Attachment` namedtuple
    """
    assert isinstance(attachment, tuple)
    assert len(attachment) == 2
    (content_type, data) = attachment
    assert isinstance(content_type, str)
    assert isinstance(data, bytes)
    return {
        'content_type': content_type,
        'data': b64encode(data).decode(),
        'length': len(data),
    }


def has_attachment(doc, name):
    """
    Return True if *doc* has an attachment named *name*.

    For example, when the attachment isn't present:

    >>> has_attachment({}, 'thumbnail')
    False
    >>> has_attachment({'_attachments': {}}, 'thumbnail')
    False

    Or when the attachment is present:

    >>> doc= {
    ...    '_attachments': {
    ...         'thumbnail': {
    ...             'content_type': 'image/png',
    ...             'data': 'UE5HIGRhdGE=',
    ...         }
    ...     }
    ... }
    ...
    >>> has_attachment(doc, 'thumbnail')
    True

    """
    try:
        doc['_attachments'][name]
        return True
    except KeyError:
        return False


def _queryiter(options):
    """
    Return appropriately encoded (key, value) pairs sorted by key.

    Every value is JSON encoded, so ``'foo'`` becomes ``'"foo"'`` while
    ``10`` stays ``'10'``, except for the string values of `RAW_OPTIONS`.
    ``None`` is sent as ``null``, a valid view key; leave an option out to
    omit it.
    """
    for key in sorted(options):
        value = options[key]
        if not (key in RAW_OPTIONS and isinstance(value, str)):
            value = json.dumps(value, sort_keys=True, separators=(',',':'))
        yield (key, value)


def basic_auth_header(basic):
    b = '{username}:{password}'.format(**basic).encode()
    return 'Basic ' + b64encode(b).decode()


def _basic_auth_header(basic):
    return {'authorization': basic_auth_header(basic)}


def build_ssl_kw(config):
    """
    Map an env ``'ssl'`` section onto the ``requests`` TLS arguments.

    >>> build_ssl_kw({'ca_file': '/tmp/ca.pem'})
    {'verify': '/tmp/ca.pem'}
    >>> build_ssl_kw({'cert_file': 'c.pem', 'key_file': 'k.pem'})
    {'verify': True, 'cert': ('c.pem', 'k.pem')}

    """
    kw = {'verify': config.get('ca_file', config.get('verify', True))}
    if 'cert_file' in config:
        if 'key_file' in config:
            kw['cert'] = (config['cert_file'], config['key_file'])
        else:
            kw['cert'] = config['cert_file']
    return kw


class Transport:
    """
    Make HTTP requests with one ``requests.Session`` per thread.

    Any object with a compatible `Transport.request()` method can be given to
    `Context` instead, which is how the unit tests swap in a fake server.
    The returned response must have ``status_code``, ``reason``, ``headers``
    and ``content`` attributes.
    """

    __slots__ = ('ssl_kw', 'timeout', 'threadlocal')

    def __init__(self, ssl=None, timeout=None):
        self.ssl_kw = build_ssl_kw({} if ssl is None else ssl)
        self.timeout = timeout
        self.threadlocal = threading.local()

    def get_threadlocal_session(self):
        session = getattr(self.threadlocal, 'session', None)
        if session is None:
            session = requests.Session()
            self.threadlocal.session = session
        return session

    def request(self, method, url, headers, body):
        session = self.get_threadlocal_session()
        return session.request(method, url,
            headers=headers,
            data=body,
            timeout=self.timeout,
            **self.ssl_kw
        )


class Context:
    """
    Share a transport and codec between multiple `CouchBase` instances.

    `Server` and `Database` instances created from one another automatically
    share the same `Context`:

    >>> from couchclient import Context, Database
    >>> ctx = Context('http://127.0.0.1:5984/')
    >>> foo = Database('foo/', ctx=ctx)
    >>> bar = foo.database('bar/')
    >>> foo.ctx is bar.ctx
    True

    However, this database doesn't use the same `Context`, despite having an
    identical *env*:

    >>> baz = Database('baz/', 'http://127.0.0.1:5984/')
    >>> baz.ctx is foo.ctx
    False

    Both the *transport* and the *codec* can be injected; by default a
    `Transport` is built from the env and the standard JSON codec is used.
    """

    __slots__ = ('env', 'basepath', 't', 'url', 'transport', 'codec')

    def __init__(self, env=None, transport=None, codec=None):
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
        if transport is None:
            transport = Transport(self.env.get('ssl'), self.env.get('timeout'))
        self.transport = transport
        self.codec = (json_codec if codec is None else codec)

    def full_url(self, path):
        return ''.join([self.t.scheme, '://', self.t.netloc, path])

    def get_auth_headers(self):
        if 'basic' in self.env:
            return _basic_auth_header(self.env['basic'])
        return {}


class CouchBase(object):
    """
    Base class for `Server` and `Database`.

    This class is a simple adapter to make it easy to call a JSON loving REST
    API similar to CouchDB.  To simplify things, there are some assumptions we
    can make:

        * Request bodies are empty or JSON

        * Response bodies are JSON, except when you GET an attachment

    With just 5 methods you can access the entire API quite elegantly:

        * `CouchBase.post()`
        * `CouchBase.put()`
        * `CouchBase.get()`
        * `CouchBase.delete()`
        * `CouchBase.get_att()`
    """

    def __init__(self, env=None, ctx=None):
        self.ctx = (Context(env) if ctx is None else ctx)
        self.env = self.ctx.env
        self.basepath = self.ctx.basepath
        self.url = self.ctx.url

    def request(self, method, parts, options, body=None, headers=None):
        h = {'user-agent': USER_AGENT}
        if headers:
            h.update(headers)
        path = (self.basepath + '/'.join(parts) if parts else self.basepath)
        query = (tuple(_queryiter(options)) if options else tuple())
        h.update(self.ctx.get_auth_headers())
        if query:
            path = '?'.join([path, urlencode(query)])
        response = self.ctx.transport.request(
            method, self.ctx.full_url(path), h, body
        )
        log.debug('%s %s -> %s', method, path, response.status_code)
        if response.status_code >= 500:
            raise ServerError(response, method, path)
        if response.status_code >= 400:
            E = errors.get(response.status_code, ClientError)
            raise E(response, method, path)
        return response

    def recv_json(self, method, parts, options, body=None, headers=None):
        if headers is None:
            headers = {}
        headers['accept'] = 'application/json'
        response = self.request(method, parts, options, body, headers)
        data = (b'' if response.content is None else response.content)
        try:
            return self.ctx.codec.decode(data.decode())
        except ValueError as e:
            raise ProtocolError(
                'bad JSON in response to {} {}'.format(
                    method, self.basepath + '/'.join(parts)
                )
            ) from e

    def post(self, obj, *parts, **options):
        """
        POST *obj*.

        For example, to create a doc with a server-assigned id in the database
        "foo/":

        >>> cb = CouchBase()
        >>> cb.post({'micro': 'fiber'}, 'foo')  #doctest: +SKIP
        {'rev': '1-967a00dff5e02add41819138abb3284d', 'ok': True, 'id': '6f1c...'}

        """
        return self.recv_json('POST', parts, options,
            _json_body(obj, self.ctx.codec.encode),
            {'content-type': 'application/json'}
        )

    def put(self, obj, *parts, **options):
        """
        PUT *obj*.

        For example, to create the database "foo/":

        >>> cb = CouchBase()
        >>> cb.put(None, 'foo')  #doctest: +SKIP
        {'ok': True}

        Or to create the doc "bar" in the database "foo/":

        >>> cb.put({'micro': 'fiber'}, 'foo', 'bar')  #doctest: +SKIP
        {'rev': '1-fae0708c46b4a6c9c497c3a687170ad6', 'ok': True, 'id': 'bar'}

        """
        return self.recv_json('PUT', parts, options,
            _json_body(obj, self.ctx.codec.encode),
            {'content-type': 'application/json'}
        )

    def get(self, *parts, **options):
        """
        Make a GET request.

        For example, to get the welcome info from the server:

        >>> cb = CouchBase()
        >>> cb.get()  #doctest: +SKIP
        {'couchdb': 'Welcome', 'version': '1.0.1'}

        """
        return self.recv_json('GET', parts, options)

    def delete(self, *parts, **options):
        """
        Make a DELETE request.

        For example, to delete the doc "bar" in the database "foo/":

        >>> cb = CouchBase()
        >>> cb.delete('foo', 'bar', rev='1-fae0708c46b4a6c9c497c3a687170ad6')  #doctest: +SKIP
        {'rev': '2-18995243f0ebd1066fcb191a28d1222a', 'ok': True, 'id': 'bar'}

        """
        return self.recv_json('DELETE', parts, options)

    def get_att(self, *parts, **options):
        """
        GET an attachment.

        Returns a (content_type, data) `Attachment` namedtuple.  For example,
        to download the attachment "baz" for the doc "bar" in the database
        "foo/":

        >>> cb = CouchBase()
        >>> cb.get_att('foo', 'bar', 'baz')  #doctest: +SKIP
        Attachment(content_type='image/png', data=b'da pic')

        """
        response = self.request('GET', parts, options)
        content_type = response.headers.get('content-type')
        data = (b'' if response.content is None else response.content)
        return Attachment(content_type, data)


class Server(CouchBase):
    """
    All the `CouchBase` methods plus some server-specific niceties.

    For example:

    >>> s = Server('http://localhost:5984/')
    >>> s
    Server('http://localhost:5984/')
    >>> s.url
    'http://localhost:5984/'
    >>> s.basepath
    '/'

    Niceties:

        * Server.database(name) - return a Database instance with server URL
        * Server.list_db_names() - names of all databases, trailing "/" added
    """

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.url)

    def info(self):
        return self.get()

    def database(self, name, ensure=False):
        """
        Create a `Database` with the same `Context` as this `Server`.

        No request is made unless *ensure* is true.
        """
        db = Database(name, ctx=self.ctx)
        if ensure:
            db.ensure()
        return db

    def list_db_names(self):
        return [name + '/' for name in self.get('_all_dbs')]

    def list_dbs(self):
        return [self.database(name) for name in self.list_db_names()]

    def db_exists(self, name):
        return self.database(name).exists()


class Database(CouchBase):
    """
    All the `CouchBase` methods plus some database-specific niceties.

    For example:

    >>> db = Database('dmedia/', 'http://localhost:5984/')
    >>> db
    Database('dmedia/', 'http://localhost:5984/')
    >>> db.name
    'dmedia/'
    >>> db.url
    'http://localhost:5984/'
    >>> db.basepath
    '/dmedia/'

    A `Database` is only a handle: creating one makes no request, and the
    database it points at doesn't need to exist yet.

    Niceties:

        * `Database.server()` - return a `Server` pointing at same URL
        * `Database.create()` - create the database, after checking its name
        * `Database.ensure()` - ensure the database exists
        * `Database.new_doc()` - return a `Document` handle for this database
        * `Database.bulk_store(docs)` - store many documents in one request
        * `Database.view(design, view, **options)` - shortcut method
    """

    def __init__(self, name, env=None, ctx=None):
        super().__init__(env, ctx)
        self.name = name
        self.basepath += escape_dbname(name)

    def __repr__(self):
        return '{}({!r}, {!r})'.format(
            self.__class__.__name__, self.name, self.url
        )

    def server(self):
        """
        Create a `Server` with the same `Context` as this `Database`.
        """
        return Server(ctx=self.ctx)

    def database(self, name):
        """
        Create a `Database` with the same `Context` as this `Database`.
        """
        return Database(name, ctx=self.ctx)

    def create(self):
        """
        Create this database.

        The name is checked with `valid_dbname()` first; an invalid name raises
        `ValidationError` without making any request.  If the database already
        exists the server answers with `PreconditionFailed`.
        """
        check_dbname(self.name)
        result = self.put(None)
        log.info('created %r', self)
        return result

    def delete(self, *parts, **options):
        """
        Make a DELETE request, or delete this database when *parts* is empty.

        As with `Database.create()`, deleting the database checks its name
        first.  Deleting a database that doesn't exist raises `NotFound`.
        Options without *parts* raise `UsageError`, as they are meant for a
        document, not for the database.
        """
        if parts:
            return super().delete(*parts, **options)
        if options:
            raise UsageError(
                'options given without a document: {!r}'.format(options)
            )
        check_dbname(self.name)
        result = super().delete(**options)
        log.info('deleted %r', self)
        return result

    def ensure(self):
        """
        Ensure the database exists.

        This method will attempt to create the database, and will handle the
        `PreconditionFailed` exception raised if the database already exists.
        """
        try:
            self.create()
            return True
        except PreconditionFailed:
            return False

    def exists(self):
        try:
            self.get()
            return True
        except NotFound:
            return False

    def info(self):
        return self.get()

    def new_doc(self, id=None, rev=None, data=None, attachments=None):
        """
        Return a `Document` handle in this database; no request is made.
        """
        from .document import Document
        return Document(self, id, rev, data, attachments)

    def new_design_doc(self, id, rev=None, data=None, attachments=None):
        """
        Return a `DesignDocument` handle in this database; no request is made.

        *id* must start with ``'_design/'``.
        """
        from .document import DesignDocument
        return DesignDocument(self, id, rev, data, attachments)

    def _all_docs(self, **options):
        result = self.get('_all_docs', **options)
        try:
            return result['rows']
        except (KeyError, TypeError):
            raise ProtocolError('no rows in _all_docs response')

    def list_doc_id_revs(self):
        """
        Return an ``{'id': ..., 'rev': ...}`` dict for every document.
        """
        return [
            {'id': row['id'], 'rev': row['value']['rev']}
            for row in self._all_docs()
        ]

    def list_docs(self):
        """
        Return a retrieved `Document` handle for every document.

        Design documents are returned as `DesignDocument` instances.
        """
        from .document import entity_from_body
        return [
            entity_from_body(self, row['doc'])
            for row in self._all_docs(include_docs=True)
        ]

    def list_design_doc_id_revs(self):
        return [
            {'id': row['id'], 'rev': row['value']['rev']}
            for row in self._all_docs(startkey='_design/', endkey='_design0')
        ]

    def list_design_docs(self):
        from .document import entity_from_body
        rows = self._all_docs(
            startkey='_design/', endkey='_design0', include_docs=True
        )
        return [entity_from_body(self, row['doc']) for row in rows]

    def lookup(self, docid, **options):
        """
        GET the document *docid*, or return None if it's not found.

        Only `NotFound` is turned into None; any other error propagates.

        >>> db = Database('mydb/')
        >>> db.lookup('hello')  #doctest: +SKIP
        {'_id': 'hello', '_rev': '1-15f65339921e497348be384867bb940f'}

        """
        try:
            return self.get(escape_docid(docid), **options)
        except NotFound:
            return None

    def doc_exists(self, id):
        """
        Return True if the document *id* exists and isn't deleted.
        """
        return self.lookup(id) is not None

    def design_doc_exists(self, id):
        # new_design_doc() raises ValidationError for a bad id.
        return self.lookup(self.new_design_doc(id).id) is not None

    def view(self, design, view, **options):
        """
        Shortcut for making a GET request to a view.

        No magic here, just saves you having to type "_design" and "_view" over
        and over.  This:

            ``Database.view(design, view, **options)``

        Is just a shortcut for:

            ``Database.get('_design', design, '_view', view, **options)``

        Except that when *keys* is given, the keys are POSTed instead.
        """
        parts = ('_design', escape_attname(design), '_view', escape_attname(view))
        if 'keys' in options:
            obj = {'keys': options.pop('keys')}
            return self.post(obj, *parts, **options)
        return self.get(*parts, **options)

    def temp_view(self, map_fn, reduce_fn=None, language='javascript',
                  **options):
        """
        Run an ad hoc map (and optional reduce) function over all docs.

        Nothing is saved on the server.  Returns a `ViewResult`.
        """
        from .document import ViewResult
        obj = {'language': language, 'map': map_fn}
        if reduce_fn is not None:
            obj['reduce'] = reduce_fn
        return ViewResult.from_json(self.post(obj, '_temp_view', **options))

    def _bulk_rows(self, bodies, entities):
        rows = self.post({'docs': bodies}, '_bulk_docs')
        if not isinstance(rows, list) or len(rows) != len(entities):
            raise ProtocolError(
                'expected {} rows from _bulk_docs'.format(len(entities))
            )
        return rows

    def bulk_store(self, entities):
        """
        Create or update many documents in a single request.

        Returns a list with one `BulkResult` per entity, in the order given.
        Each stored entity gets its ``rev`` (and a server-assigned ``id`` if it
        had none) updated in-place.  Per-document failures, typically
        conflicts, are reported in the results rather than raised; those
        entities are left untouched.
        """
        entities = list(entities)
        bodies = [e.content_for_submit() for e in entities]
        rows = self._bulk_rows(bodies, entities)
        results = []
        for (entity, row) in zip(entities, rows):
            if 'rev' in row and 'error' not in row:
                entity._set_stored(row)
                results.append(BulkResult(entity, True, row['rev'], None, None))
            else:
                results.append(BulkResult(entity, False, None,
                    row.get('error'), row.get('reason')
                ))
        _log_bulk_failures('store', results)
        return results

    def bulk_delete(self, entities):
        """
        Delete many documents in a single request.

        Every entity must hold a revision, otherwise `UsageError` is raised
        before any request is made.  Results are reported as for
        `Database.bulk_store()`; deleted entities record their
        ``deletion_stub_rev``.
        """
        entities = list(entities)
        for entity in entities:
            entity._check_stored('bulk delete')
        bodies = [
            {'_id': e.id, '_rev': e.rev, '_deleted': True} for e in entities
        ]
        rows = self._bulk_rows(bodies, entities)
        results = []
        for (entity, row) in zip(entities, rows):
            if 'rev' in row and 'error' not in row:
                entity._set_deleted(row['rev'])
                results.append(BulkResult(entity, True, row['rev'], None, None))
            else:
                results.append(BulkResult(entity, False, None,
                    row.get('error'), row.get('reason')
                ))
        _log_bulk_failures('delete', results)
        return results


def _log_bulk_failures(action, results):
    failed = [r for r in results if not r.ok]
    if failed:
        log.warning('bulk %s: %d of %d failed: %s', action, len(failed),
            len(results), ', '.join(repr(r.entity.id) for r in failed)
        )
