"""
Tests for the SQLAlchemy storage backend against in-memory SQLite.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine, insert

from quarry.exceptions import StorageUnavailable
from quarry.query.executor import QueryExecutor
from quarry.query.plan import OrderTerm
from quarry.query.predicate import eq, in_, is_null, where
from quarry.storage.sql import SQLAlchemyStorage, build_metadata, compile_predicate


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def sql_storage(registry, engine, blog_rows):
    storage = SQLAlchemyStorage(registry, engine)

    # Test setup only: the backend itself never issues DDL
    storage.metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(insert(storage.table('User')), blog_rows['User'])
        conn.execute(insert(storage.table('Post')), blog_rows['Post'])
        conn.execute(insert(storage.table('Comment')), blog_rows['Comment'])

    return storage


class TestMetadata:
    def test_tables_mirror_entities(self, registry):
        metadata = build_metadata(registry)

        post = metadata.tables['Post']
        assert [c.name for c in post.columns] == list(registry.lookup('Post').field_names)
        assert [c.name for c in post.primary_key.columns] == ['id']

    def test_indexes_mirror_descriptors(self, registry):
        metadata = build_metadata(registry)

        indexes = {ix.name: ix for ix in metadata.tables['User'].indexes}
        assert set(indexes) == {'ix_User_email'}
        assert indexes['ix_User_email'].unique

    def test_table_name_overrides(self, registry, engine):
        storage = SQLAlchemyStorage(registry, engine, table_names={'Post': 'posts'})
        assert storage.table('Post').name == 'posts'
        assert storage.table('Comment').name == 'Comment'

    def test_compile_predicate(self, registry):
        table = build_metadata(registry).tables['Post']
        clause = compile_predicate(eq('status', 'draft') & ~is_null('score'), table)

        sql = str(clause.compile(compile_kwargs={'literal_binds': True}))
        assert "status = 'draft'" in sql
        assert 'score IS NOT NULL' in sql


class TestFetch:
    def test_fetch_projection(self, registry, sql_storage):
        rows = sql_storage.fetch(registry.lookup('Post'), None, ['id', 'title'])
        assert sorted(rows, key=lambda r: r['id']) == [
            {'id': 1, 'title': 'Indexes'},
            {'id': 2, 'title': 'Eager loading'},
        ]

    def test_fetch_predicates(self, registry, sql_storage):
        post = registry.lookup('Post')

        assert sql_storage.fetch(post, where('score', '>=', 10), ['id']) == [{'id': 1}]
        assert sql_storage.fetch(post, eq('status', 'draft') | eq('id', 1), ['id'], [OrderTerm('id')]) == [
            {'id': 1}, {'id': 2}
        ]
        assert sql_storage.fetch(post, ~eq('status', 'draft'), ['id']) == [{'id': 1}]
        assert sql_storage.fetch(post, eq('score', None), ['id']) == []

    def test_fetch_membership(self, registry, sql_storage):
        comment = registry.lookup('Comment')
        rows = sql_storage.fetch(comment, in_('post_id', [1]), ['id', 'body'], [OrderTerm('id')])
        assert rows == [{'id': 1, 'body': 'Nice'}, {'id': 2, 'body': 'Thanks'}]
        assert sql_storage.fetch(comment, in_('post_id', []), ['id']) == []

    def test_ordering_and_limit(self, registry, sql_storage):
        rows = sql_storage.fetch(
            registry.lookup('Comment'), None, ['id'], [OrderTerm('created_at', True)], limit=2
        )
        assert rows == [{'id': 3}, {'id': 2}]

    def test_datetimes_round_trip(self, registry, sql_storage):
        rows = sql_storage.fetch(registry.lookup('Post'), eq('id', 1), ['created_at'])
        assert rows == [{'created_at': datetime(2024, 1, 1)}]

    def test_unreachable_database(self, registry, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'blog.db'}")
        storage = SQLAlchemyStorage(registry, engine)

        with pytest.raises(StorageUnavailable) as exc_info:
            storage.fetch(registry.lookup('Post'), None, ['id'])
        assert exc_info.value.entity == 'Post'
        assert exc_info.value.__cause__ is not None


class TestNullParity:
    """Both backends must return the same rows for the same predicate."""

    ANONYMOUS = {'id': 4, 'post_id': 2, 'author_id': None, 'body': 'Anon', 'created_at': None}

    @pytest.fixture
    def backends(self, storage, sql_storage, engine):
        storage.load('Comment', [self.ANONYMOUS])
        with engine.begin() as conn:
            conn.execute(insert(sql_storage.table('Comment')), [self.ANONYMOUS])
        return storage, sql_storage

    @pytest.mark.parametrize('predicate,expected', [
        (~eq('author_id', 2), [2, 3]),
        (~where('author_id', '<', 2), [1]),
        (~(eq('author_id', 2) | eq('post_id', 1)), [3]),
        (~(eq('author_id', 2) & eq('post_id', 2)), [1, 2, 3]),
        (~(eq('author_id', 2) & eq('post_id', 1)), [2, 3, 4]),
        (~eq('author_id', None), []),
        (~in_('author_id', []), [1, 2, 3, 4]),
        (~in_('author_id', [2]), [2, 3]),
        (is_null('author_id') | eq('author_id', 2), [1, 4]),
    ])
    def test_same_rows_from_both_backends(self, registry, backends, predicate, expected):
        comment = registry.lookup('Comment')
        order = [OrderTerm('id')]

        for backend in backends:
            rows = backend.fetch(comment, predicate, ['id'], order)
            assert [r['id'] for r in rows] == expected, type(backend).__name__


class TestExecutorOverSQL:
    def test_eager_loading_batches_queries(self, registry, compiler, settings, sql_storage):
        executor = QueryExecutor(registry, sql_storage, settings)
        posts = executor.execute(
            compiler.compile('Post', [], ['comments.author'], ['title'], order_by=['id'])
        )

        assert sql_storage.fetch_count == 3
        assert [p.title for p in posts] == ['Indexes', 'Eager loading']
        assert sorted(c.body for c in posts[0].comments) == ['Nice', 'Thanks']
        assert posts[1].comments[0].author.name == 'Alice'

    def test_scoped_query(self, registry, compiler, settings, sql_storage):
        executor = QueryExecutor(registry, sql_storage, settings)
        posts = executor.execute(compiler.compile('Post', scopes=['published', 'summary', 'with_comments']))

        assert [p.to_dict()['title'] for p in posts] == ['Indexes']
        assert len(posts[0].comments) == 2
        assert sql_storage.fetch_count == 2
