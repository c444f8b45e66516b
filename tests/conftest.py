"""
Shared pytest fixtures for the Quarry test suite.

The fixtures model a small blog: users write posts, posts have comments,
comments have authors.
"""

from datetime import datetime

import pytest

from quarry.config import QuarrySettings
from quarry.core.entity import IndexDescriptor, belongs_to, entity, has_many
from quarry.core.registry import SchemaRegistry
from quarry.query.compiler import ScopeCompiler
from quarry.query.executor import QueryExecutor
from quarry.query.scope import Scope
from quarry.storage.memory import MemoryStorage


USERS = [
    {'id': 1, 'name': 'Alice', 'email': 'alice@example.com'},
    {'id': 2, 'name': 'Bob', 'email': 'bob@example.com'},
]

POSTS = [
    {'id': 1, 'author_id': 1, 'title': 'Indexes', 'body': 'Add them.', 'status': 'published',
     'score': 10, 'created_at': datetime(2024, 1, 1)},
    {'id': 2, 'author_id': 2, 'title': 'Eager loading', 'body': 'Batch it.', 'status': 'draft',
     'score': 3, 'created_at': datetime(2024, 2, 1)},
]

COMMENTS = [
    {'id': 1, 'post_id': 1, 'author_id': 2, 'body': 'Nice', 'created_at': datetime(2024, 1, 2)},
    {'id': 2, 'post_id': 1, 'author_id': 1, 'body': 'Thanks', 'created_at': datetime(2024, 1, 3)},
    {'id': 3, 'post_id': 2, 'author_id': 1, 'body': 'When?', 'created_at': datetime(2024, 2, 2)},
]


def build_registry() -> SchemaRegistry:
    registry = SchemaRegistry()

    registry.register(entity('User', [
        ('id', 'int'),
        ('name', 'str'),
        ('email', 'str'),
    ], relations=[
        has_many('posts', 'Post', 'author_id'),
    ]))

    registry.register(entity('Post', [
        ('id', 'int'),
        ('author_id', 'int'),
        ('title', 'str'),
        ('body', 'text'),
        ('status', 'str'),
        ('score', 'int'),
        ('created_at', 'datetime'),
    ], relations=[
        has_many('comments', 'Comment', 'post_id'),
        belongs_to('author', 'User', 'author_id'),
    ]))

    registry.register(entity('Comment', [
        ('id', 'int'),
        ('post_id', 'int'),
        ('author_id', 'int'),
        ('body', 'text'),
        ('created_at', 'datetime'),
    ], relations=[
        belongs_to('post', 'Post', 'post_id'),
        belongs_to('author', 'User', 'author_id'),
    ]))

    registry.add_index(IndexDescriptor.on('User', 'email', unique=True))
    registry.add_index(IndexDescriptor.on('Post', 'status'))
    registry.add_index(IndexDescriptor.on('Comment', 'post_id'))

    registry.define_scope(Scope.define('Post', 'published', where={'status': 'published'}))
    registry.define_scope(Scope.define('Post', 'with_comments', includes=['comments']))
    registry.define_scope(Scope.define('Post', 'summary', only=['title', 'created_at']))
    registry.define_scope(Scope.define('Post', 'newest', order_by=['-created_at'], limit=5))

    return registry


@pytest.fixture
def registry():
    """Frozen blog schema."""
    return build_registry().freeze()


@pytest.fixture
def settings():
    return QuarrySettings(lazy_load='allow')


@pytest.fixture
def storage(registry):
    """In-memory storage seeded with 2 users, 2 posts and 3 comments."""
    storage = MemoryStorage(registry)
    storage.load('User', USERS)
    storage.load('Post', POSTS)
    storage.load('Comment', COMMENTS)
    return storage


@pytest.fixture
def compiler(registry):
    return ScopeCompiler(registry)


@pytest.fixture
def executor(registry, storage, settings):
    return QueryExecutor(registry, storage, settings)


@pytest.fixture
def blog_rows():
    """Seed rows by entity name."""
    return {'User': USERS, 'Post': POSTS, 'Comment': COMMENTS}
