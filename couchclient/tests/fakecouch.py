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
An in-memory stand-in for a CouchDB server, usable as a `Transport`.

`FakeCouch` understands enough of the HTTP API to exercise the whole client:
databases, documents with revision histories and tombstones, inline and stub
attachments, ``_all_docs``, ``_bulk_docs``, design doc views and temp views.

Map and reduce functions can't be JavaScript here, so each function source
string has to be registered with a Python stand-in first:

>>> couch = FakeCouch()
>>> couch.register('function(doc) { emit(doc._id, null); }',
...     lambda doc: [(doc['_id'], None)]
... )

A map stand-in takes the doc body and returns (key, value) pairs.  A reduce
stand-in takes ``(keys, values, rereduce)``; ``'_count'`` and ``'_sum'`` are
built in.
"""

from base64 import b64decode
from hashlib import md5
import json
from urllib.parse import urlparse, unquote, parse_qsl
from uuid import uuid4


RAW_OPTIONS = frozenset(['rev', 'startkey_docid', 'endkey_docid', 'stale'])


class FakeResponse:
    def __init__(self, status_code, reason, headers, content):
        self.status_code = status_code
        self.reason = reason
        self.headers = headers
        self.content = content

    def __repr__(self):
        return 'FakeResponse({!r}, {!r})'.format(self.status_code, self.reason)


REASONS = {
    200: 'OK',
    201: 'Created',
    400: 'Bad Request',
    404: 'Object Not Found',
    405: 'Method Not Allowed',
    409: 'Conflict',
    412: 'Precondition Failed',
    500: 'Internal Server Error',
}


class FakeError(Exception):
    def __init__(self, status, error, reason):
        self.status = status
        self.error = error
        self.reason = reason
        super().__init__(status, error, reason)


def conflict():
    return FakeError(409, 'conflict', 'Document update conflict.')


def not_found(reason='missing'):
    return FakeError(404, 'not_found', reason)


def collate(value):
    """
    Sort key approximating view collation: null, booleans, numbers, strings,
    arrays, objects.
    """
    if value is None:
        return (0,)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, list):
        return (4, tuple(collate(v) for v in value))
    return (5, tuple((k, collate(v)) for (k, v) in sorted(value.items())))


class Revision:
    __slots__ = ('rev', 'data', 'atts', 'deleted')

    def __init__(self, rev, data, atts, deleted):
        self.rev = rev
        self.data = data
        self.atts = atts
        self.deleted = deleted

    @property
    def pos(self):
        return int(self.rev.split('-')[0])


class FakeCouch:
    def __init__(self):
        self.dbs = {}
        self.functions = {}
        self.calls = []

    def register(self, source, func):
        self.functions[source] = func

    def request(self, method, url, headers, body):
        self.calls.append((method, url, headers, body))
        t = urlparse(url)
        parts = [unquote(p) for p in t.path.split('/')[1:]]
        if parts and parts[-1] == '':
            parts.pop()
        options = {}
        for (key, value) in parse_qsl(t.query, keep_blank_values=True):
            if key not in RAW_OPTIONS:
                value = json.loads(value)
            options[key] = value
        obj = (None if body is None else json.loads(body.decode()))
        try:
            result = self.route(method, parts, options, obj)
        except FakeError as e:
            return self.json_response(e.status,
                {'error': e.error, 'reason': e.reason}
            )
        if isinstance(result, FakeResponse):
            return result
        (status, obj) = result
        return self.json_response(status, obj)

    def json_response(self, status, obj):
        return FakeResponse(status, REASONS[status],
            {'content-type': 'application/json'},
            json.dumps(obj).encode(),
        )

    def route(self, method, parts, options, obj):
        if not parts:
            return (200, {'couchdb': 'Welcome', 'version': 'fake'})
        if parts == ['_all_dbs']:
            return (200, sorted(self.dbs))
        dbname = parts[0]
        rest = parts[1:]
        if not rest:
            return self.db_request(method, dbname, obj)
        docs = self.get_db(dbname)
        if rest == ['_all_docs']:
            return self.all_docs(docs, options)
        if rest == ['_bulk_docs']:
            return self.bulk_docs(docs, obj)
        if rest == ['_temp_view']:
            view = {'map': obj['map']}
            if 'reduce' in obj:
                view['reduce'] = obj['reduce']
            return self.run_view(docs, view, options)
        if rest[0] == '_design':
            if len(rest) == 4 and rest[2] == '_view':
                return self.query_view(docs, rest[1], rest[3], options, obj)
            docid = '_design/' + rest[1]
            rest = rest[2:]
        else:
            docid = rest[0]
            rest = rest[1:]
        if rest:
            return self.get_attachment(docs, docid, rest[0])
        return self.doc_request(method, docs, docid, options, obj)

    def get_db(self, name):
        try:
            return self.dbs[name]
        except KeyError:
            raise not_found('no_db_file')

    def db_request(self, method, name, obj):
        if method == 'PUT':
            if name in self.dbs:
                raise FakeError(412, 'file_exists', 'The database could not '
                    'be created, the file already exists.'
                )
            self.dbs[name] = {}
            return (201, {'ok': True})
        if method == 'DELETE':
            self.get_db(name)
            del self.dbs[name]
            return (200, {'ok': True})
        docs = self.get_db(name)
        if method == 'GET':
            return (200, {
                'db_name': name,
                'doc_count': len(self.live(docs)),
            })
        if method == 'POST':
            docid = obj.get('_id', uuid4().hex)
            return (201, self.store(docs, docid, obj))
        raise FakeError(405, 'method_not_allowed', method)

    def live(self, docs):
        return dict(
            (docid, revs[0]) for (docid, revs) in docs.items()
            if not revs[0].deleted
        )

    def store(self, docs, docid, body, rev=None):
        revs = docs.get(docid, [])
        given = body.get('_rev', rev)
        if revs:
            current = revs[0]
            if current.deleted:
                if given and given != current.rev:
                    raise conflict()
            elif given != current.rev:
                raise conflict()
            pos = current.pos + 1
        else:
            if given:
                raise conflict()
            current = None
            pos = 1
        deleted = bool(body.get('_deleted', False))
        atts = {}
        data = {}
        if not deleted:
            data = dict(
                (k, v) for (k, v) in body.items() if not k.startswith('_')
            )
            for (name, att) in body.get('_attachments', {}).items():
                if att.get('stub'):
                    if current is None or name not in current.atts:
                        raise FakeError(412, 'missing_stub',
                            'no attachment {!r}'.format(name)
                        )
                    atts[name] = current.atts[name]
                else:
                    atts[name] = (
                        att.get('content_type', 'application/octet-stream'),
                        b64decode(att['data']),
                        pos,
                    )
        newrev = '{}-{}'.format(pos, uuid4().hex)
        revs.insert(0, Revision(newrev, data, atts, deleted))
        docs[docid] = revs
        return {'ok': True, 'id': docid, 'rev': newrev}

    def body(self, docid, revision):
        body = {'_id': docid, '_rev': revision.rev}
        if revision.deleted:
            body['_deleted'] = True
            return body
        body.update(revision.data)
        if revision.atts:
            body['_attachments'] = dict(
                (name, {
                    'content_type': content_type,
                    'digest': 'md5-' + md5(data).hexdigest(),
                    'length': len(data),
                    'revpos': revpos,
                    'stub': True,
                })
                for (name, (content_type, data, revpos)) in revision.atts.items()
            )
        return body

    def doc_request(self, method, docs, docid, options, obj):
        if method == 'PUT':
            return (201, self.store(docs, docid, obj))
        if method == 'DELETE':
            if 'rev' not in options:
                raise conflict()
            return (200, self.store(docs, docid, {'_deleted': True},
                options['rev']
            ))
        if method != 'GET':
            raise FakeError(405, 'method_not_allowed', method)
        revs = docs.get(docid)
        if not revs:
            raise not_found()
        if 'rev' in options:
            for revision in revs:
                if revision.rev == options['rev']:
                    return (200, self.body(docid, revision))
            raise not_found()
        if revs[0].deleted:
            raise not_found('deleted')
        body = self.body(docid, revs[0])
        if options.get('revs_info'):
            body['_revs_info'] = [
                {
                    'rev': r.rev,
                    'status': ('deleted' if r.deleted else 'available'),
                }
                for r in revs
            ]
        return (200, body)

    def get_attachment(self, docs, docid, name):
        revs = docs.get(docid)
        if not revs or revs[0].deleted or name not in revs[0].atts:
            raise not_found()
        (content_type, data, revpos) = revs[0].atts[name]
        return FakeResponse(200, 'OK', {'content-type': content_type}, data)

    def all_docs(self, docs, options):
        live = self.live(docs)
        rows = [
            {'id': docid, 'key': docid, 'value': {'rev': live[docid].rev}}
            for docid in sorted(live)
        ]
        if options.get('include_docs'):
            for row in rows:
                row['doc'] = self.body(row['id'], live[row['id']])
        return (200, self.select(rows, options, len(rows)))

    def bulk_docs(self, docs, obj):
        results = []
        for body in obj['docs']:
            docid = body.get('_id', uuid4().hex)
            try:
                results.append(self.store(docs, docid, body))
            except FakeError as e:
                results.append(
                    {'id': docid, 'error': e.error, 'reason': e.reason}
                )
        return (201, results)

    def select(self, rows, options, total_rows):
        descending = options.get('descending', False)
        if descending:
            rows = list(reversed(rows))
        if 'key' in options:
            k = collate(options['key'])
            rows = [r for r in rows if collate(r['key']) == k]
        (low, high) = (
            ('endkey', 'startkey') if descending else ('startkey', 'endkey')
        )
        if low in options:
            k = collate(options[low])
            rows = [r for r in rows if collate(r['key']) >= k]
        if high in options:
            k = collate(options[high])
            rows = [r for r in rows if collate(r['key']) <= k]
        skip = options.get('skip', 0)
        rows = rows[skip:]
        if 'limit' in options:
            rows = rows[:options['limit']]
        return {'total_rows': total_rows, 'offset': skip, 'rows': rows}

    def map_rows(self, docs, source):
        try:
            func = self.functions[source]
        except KeyError:
            raise FakeError(500, 'unknown_function', source)
        live = self.live(docs)
        rows = []
        for docid in sorted(live):
            if docid.startswith('_design/'):
                continue
            body = self.body(docid, live[docid])
            for (key, value) in func(body):
                rows.append({'id': docid, 'key': key, 'value': value})
        rows.sort(key=lambda r: (collate(r['key']), r['id']))
        return rows

    def reduce(self, source, keys, values):
        if source == '_count':
            return len(values)
        if source == '_sum':
            return sum(values)
        try:
            func = self.functions[source]
        except KeyError:
            raise FakeError(500, 'unknown_function', source)
        return func(keys, values, False)

    def run_view(self, docs, view, options):
        rows = self.map_rows(docs, view['map'])
        if 'reduce' in view and options.get('reduce', True):
            selected = self.select(rows, dict(
                (k, v) for (k, v) in options.items()
                if k not in ('limit', 'skip')
            ), len(rows))['rows']
            if not selected:
                return (200, {'rows': []})
            if options.get('group'):
                groups = []
                for row in selected:
                    if groups and collate(groups[-1][0]) == collate(row['key']):
                        groups[-1][1].append(row)
                    else:
                        groups.append((row['key'], [row]))
            else:
                groups = [(None, selected)]
            reduced = [
                {
                    'key': key,
                    'value': self.reduce(view['reduce'],
                        [[r['key'], r['id']] for r in group],
                        [r['value'] for r in group],
                    ),
                }
                for (key, group) in groups
            ]
            skip = options.get('skip', 0)
            reduced = reduced[skip:]
            if 'limit' in options:
                reduced = reduced[:options['limit']]
            return (200, {'rows': reduced})
        result = self.select(rows, options, len(rows))
        if options.get('include_docs'):
            live = self.live(docs)
            for row in result['rows']:
                row['doc'] = self.body(row['id'], live[row['id']])
        return (200, result)

    def query_view(self, docs, design, name, options, obj):
        revs = docs.get('_design/' + design)
        if not revs or revs[0].deleted:
            raise not_found()
        try:
            view = revs[0].data['views'][name]
        except KeyError:
            raise not_found('missing_named_view')
        if obj is not None and 'keys' in obj:
            (status, result) = self.run_view(docs, view, options)
            wanted = [collate(k) for k in obj['keys']]
            result['rows'] = [
                r for r in result['rows'] if collate(r['key']) in wanted
            ]
            return (status, result)
        return self.run_view(docs, view, options)
