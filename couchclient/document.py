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
Document and design document handles.

A `Document` is a local handle on a document that may or may not exist on the
server yet.  It goes through three states:

    1. ``UNBOUND`` - only exists locally, has no revision

    2. ``CREATED`` - stored on the server, ``doc.rev`` is the latest revision
       this handle knows about

    3. ``DELETED`` - deleted on the server, ``doc.deletion_stub_rev`` is the
       revision of the tombstone

Every mutating call sends the last known revision and lets the server decide;
when someone else got there first you get a `Conflict`, never a silent
overwrite:

>>> from couchclient import Database
>>> db = Database('mydb/')
>>> doc = db.new_doc('hello', data={'a': 1})
>>> doc.state
'unbound'
>>> doc.create()  #doctest: +SKIP
Document('hello', '1-23202479633c2b380f79507a776743d5')
>>> doc.data['b'] = 2
>>> doc.update()  #doctest: +SKIP
Document('hello', '2-80bd3df6c2cbd8a1d2dd2a6b1a5e1c33')
>>> doc.delete()  #doctest: +SKIP
Document('hello', None)
>>> doc.deletion_stub_rev  #doctest: +SKIP
'3-7379b9e515b161226c6559d90c4dc49f'

"""

from collections import namedtuple
import logging

from . import (
    Attachment,
    DESIGN_PREFIX,
    ProtocolError,
    RevisionConflict,
    UsageError,
    ValidationError,
    ViewNotFound,
    encode_attachment,
    escape_attname,
    escape_docid,
)


log = logging.getLogger(__name__)

UNBOUND = 'unbound'
CREATED = 'created'
DELETED = 'deleted'

RESERVED = frozenset(['_id', '_rev', '_attachments', '_deleted'])

ViewRow = namedtuple('ViewRow', 'id key value doc')


def is_design_id(docid):
    return (
        isinstance(docid, str)
        and docid.startswith(DESIGN_PREFIX)
        and len(docid) > len(DESIGN_PREFIX)
    )


def _field(obj, key):
    try:
        return obj[key]
    except (KeyError, TypeError):
        raise ProtocolError('response has no {!r}: {!r}'.format(key, obj))


def split_body(body):
    """
    Split a document body into ``(id, rev, data, attachments)``.

    >>> split_body({'_id': 'foo', '_rev': '1-abc', 'bar': 'baz'})
    ('foo', '1-abc', {'bar': 'baz'}, {})

    """
    data = dict(
        (key, value) for (key, value) in body.items() if key not in RESERVED
    )
    return (
        body.get('_id'),
        body.get('_rev'),
        data,
        dict(body.get('_attachments', {})),
    )


def entity_from_body(db, body):
    """
    Build the right kind of handle for a document body fetched from *db*.
    """
    if is_design_id(body.get('_id')):
        return DesignDocument.from_body(db, body)
    return Document.from_body(db, body)


class ViewResult:
    """
    Rows returned by a view query, plus ``total_rows`` and ``offset``.

    >>> result = ViewResult.from_json({
    ...     'total_rows': 3,
    ...     'offset': 1,
    ...     'rows': [{'id': 'b', 'key': 'b', 'value': None}],
    ... })
    >>> len(result)
    1
    >>> result[0]
    ViewRow(id='b', key='b', value=None, doc=None)

    """

    __slots__ = ('rows', 'total_rows', 'offset')

    def __init__(self, rows, total_rows=None, offset=None):
        self.rows = rows
        self.total_rows = total_rows
        self.offset = offset

    @classmethod
    def from_json(cls, obj):
        rows = _field(obj, 'rows')
        return cls(
            [
                ViewRow(r.get('id'), r.get('key'), r.get('value'), r.get('doc'))
                for r in rows
            ],
            obj.get('total_rows'),
            obj.get('offset'),
        )

    def __repr__(self):
        return '{}(<{} rows>, total_rows={!r}, offset={!r})'.format(
            self.__class__.__name__, len(self.rows),
            self.total_rows, self.offset
        )

    def __len__(self):
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def __getitem__(self, index):
        return self.rows[index]


class Document:
    """
    A document with an id, a revision, a body and attachments.

    ``data`` is the document body without the reserved ``_id``, ``_rev`` and
    ``_attachments`` fields, which live in ``id``, ``rev`` and ``attachments``.

    A handle built with a *rev* is assumed to be stored already.  A handle is
    not thread-safe; callers sharing one must serialize access themselves.
    """

    def __init__(self, db, id=None, rev=None, data=None, attachments=None):
        self.db = db
        self.id = id
        self.rev = rev
        self.data = ({} if data is None else data)
        self.attachments = ({} if attachments is None else attachments)
        self.deletion_stub_rev = None
        self.state = (CREATED if rev else UNBOUND)

    @classmethod
    def from_body(cls, db, body):
        (_id, rev, data, attachments) = split_body(body)
        return cls(db, _id, rev, data, attachments)

    def __repr__(self):
        return '{}({!r}, {!r})'.format(self.__class__.__name__, self.id, self.rev)

    def uri_parts(self, *extra):
        if self.id is None:
            raise UsageError('{!r} has no id'.format(self))
        return (escape_docid(self.id),) + extra

    def content_for_submit(self):
        """
        Return the JSON body sent to the server for this document.
        """
        body = dict(self.data)
        if self.id is not None:
            body['_id'] = self.id
        if self.rev:
            body['_rev'] = self.rev
        if self.attachments:
            body['_attachments'] = dict(self.attachments)
        return body

    def _check_stored(self, action):
        if self.state == DELETED:
            raise RevisionConflict(
                'cannot {} {!r}: already deleted at {!r}'.format(
                    action, self.id, self.deletion_stub_rev
                )
            )
        if not self.rev:
            raise UsageError(
                'cannot {} {!r}: no revision'.format(action, self)
            )

    def _stub_attachments(self):
        # Uploaded attachments are referenced by stub from now on.
        for (name, att) in self.attachments.items():
            if 'data' in att:
                self.attachments[name] = {
                    'content_type': att['content_type'],
                    'length': att['length'],
                    'stub': True,
                }

    def _set_stored(self, result):
        self.id = _field(result, 'id')
        self.rev = _field(result, 'rev')
        self.state = CREATED
        self._stub_attachments()

    def _set_deleted(self, rev):
        self.deletion_stub_rev = rev
        self.rev = None
        self.data = {}
        self.attachments = {}
        self.state = DELETED

    def _load(self, body):
        (_id, rev, data, attachments) = split_body(body)
        self.id = _id
        self.rev = _field(body, '_rev')
        self.data = data
        self.attachments = attachments
        self.state = CREATED

    def create(self):
        """
        Store this document for the first time.

        Without an id, the document is POSTed and the id assigned by the
        server is stored in ``self.id``.  Raises `Conflict` if the id is
        already taken on the server, and `RevisionConflict` if this handle
        already holds a revision.
        """
        if self.state == CREATED:
            raise RevisionConflict(
                'cannot create {!r}: already stored'.format(self)
            )
        body = self.content_for_submit()
        if self.id is None:
            self._set_stored(self.db.post(body))
            log.debug('server assigned id %r', self.id)
        else:
            self._set_stored(self.db.put(body, *self.uri_parts()))
        return self

    def retrieve(self):
        """
        Replace ``rev``, ``data`` and ``attachments`` with the stored version.

        Raises `NotFound` if the document doesn't exist or was deleted.
        """
        self._load(self.db.get(*self.uri_parts()))
        return self

    def update(self):
        """
        Store the current ``data`` and ``attachments`` as a new revision.

        The last known ``rev`` is sent along; if the document changed on the
        server since, `Conflict` is raised and nothing is stored.
        """
        self._check_stored('update')
        result = self.db.put(self.content_for_submit(), *self.uri_parts())
        self._set_stored(result)
        return self

    def delete(self):
        self._check_stored('delete')
        result = self.db.delete(*self.uri_parts(), rev=self.rev)
        self._set_deleted(_field(result, 'rev'))
        return self

    def retrieve_from_rev(self, rev):
        """
        Return a new handle holding this document as it was at *rev*.

        This handle is left untouched.  When *rev* is a tombstone the new
        handle is ``DELETED``, with *rev* as its ``deletion_stub_rev``.
        """
        body = self.db.get(*self.uri_parts(), rev=rev)
        doc = self.from_body(self.db, body)
        if body.get('_deleted'):
            doc._set_deleted(_field(body, '_rev'))
        return doc

    def revisions_info(self):
        """
        Return ``[{'rev': ..., 'status': ...}, ...]``, newest first.

        Status is one of ``'available'``, ``'missing'`` or ``'deleted'``.
        """
        body = self.db.get(*self.uri_parts(), revs_info=True)
        return _field(body, '_revs_info')

    def add_attachment(self, name, content_type, data):
        """
        Add (or replace) the attachment *name*, sent with the next store.
        """
        self.attachments[name] = encode_attachment(
            Attachment(content_type, data)
        )

    def delete_attachment(self, name):
        del self.attachments[name]

    def attachment_names(self):
        return sorted(self.attachments)

    def fetch_attachment(self, name):
        """
        Download the stored attachment *name* and return its bytes.

        Only attachments that have been stored on the server can be fetched;
        raises `NotFound` otherwise.
        """
        att = self.db.get_att(*self.uri_parts(escape_attname(name)))
        return att.data


class DesignDocument(Document):
    """
    A `Document` whose body defines named views.

    The id must start with ``'_design/'``:

    >>> from couchclient import Database
    >>> ddoc = DesignDocument(Database('mydb/'), '_design/doc')
    >>> ddoc.name
    'doc'
    >>> ddoc.data
    {'language': 'javascript', 'views': {}}

    """

    def __init__(self, db, id, rev=None, data=None, attachments=None):
        if not is_design_id(id):
            raise ValidationError(
                'design doc id must start with {!r}; got {!r}'.format(
                    DESIGN_PREFIX, id
                )
            )
        if data is None:
            data = {'language': 'javascript', 'views': {}}
        super().__init__(db, id, rev, data, attachments)

    @property
    def name(self):
        return self.id[len(DESIGN_PREFIX):]

    @property
    def views(self):
        return self.data.setdefault('views', {})

    def list_views(self):
        return sorted(self.views)

    def get_view(self, name):
        return self.views[name]

    def set_view(self, name, map_fn, reduce_fn=None):
        view = {'map': map_fn}
        if reduce_fn is not None:
            view['reduce'] = reduce_fn
        self.views[name] = view

    def delete_view(self, name):
        del self.views[name]

    def query_view(self, name, **options):
        """
        Query the view *name* and return a `ViewResult`.

        Options are passed through as query parameters, each JSON encoded, so
        for example ``key='foo'`` becomes ``key="foo"`` and ``limit=10``
        becomes ``limit=10``.  ``count`` is accepted as an alias for
        ``limit``.

        Raises `ViewNotFound` if this design doc doesn't define *name*.
        """
        if name not in self.views:
            raise ViewNotFound(self.id, name)
        if 'count' in options:
            options.setdefault('limit', options.pop('count'))
        return ViewResult.from_json(self.db.view(self.name, name, **options))
