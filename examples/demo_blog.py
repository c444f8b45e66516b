"""
Blog Query Planning Demo

Shows the four read optimisations Quarry plans for: declared indices,
eager loading, field projection and composable scopes. Every section
prints how many storage fetches it cost.
"""

from datetime import datetime

from quarry import IndexDescriptor, SchemaRegistry, Scope, Session, belongs_to, entity, has_many
from quarry.config import QuarrySettings
from quarry.logging_config import configure_logging
from quarry.storage import MemoryStorage


def build_schema() -> SchemaRegistry:
    registry = SchemaRegistry()

    registry.register(entity('User', [('id', 'int'), ('name', 'str')]))
    registry.register(entity('Post', [
        ('id', 'int'), ('author_id', 'int'), ('title', 'str'),
        ('status', 'str'), ('created_at', 'datetime'),
    ], relations=[
        has_many('comments', 'Comment', 'post_id'),
        belongs_to('author', 'User', 'author_id'),
    ]))
    registry.register(entity('Comment', [
        ('id', 'int'), ('post_id', 'int'), ('body', 'text'),
    ]))

    registry.add_index(IndexDescriptor.on('Post', 'status'))
    registry.add_index(IndexDescriptor.on('Comment', 'post_id'))

    registry.define_scope(Scope.define('Post', 'published', where={'status': 'published'}))
    registry.define_scope(Scope.define('Post', 'recent', order_by=['-created_at'], limit=10))
    return registry


def seed(storage: MemoryStorage, post_count: int = 20) -> None:
    storage.load('User', [{'id': 1, 'name': 'Alice'}, {'id': 2, 'name': 'Bob'}])
    storage.load('Post', [
        {
            'id': i,
            'author_id': 1 + i % 2,
            'title': f'Post #{i}',
            'status': 'published' if i % 3 else 'draft',
            'created_at': datetime(2024, 1, i),
        }
        for i in range(1, post_count + 1)
    ])
    storage.load('Comment', [
        {'id': i * 10 + c, 'post_id': i, 'body': f'Comment {c} on #{i}'}
        for i in range(1, post_count + 1)
        for c in range(3)
    ])


def demo():
    print("=" * 70)
    print("QUARRY - READ QUERY PLANNING DEMO")
    print("=" * 70)
    print()

    registry = build_schema()
    storage = MemoryStorage(registry)
    seed(storage)
    session = Session(registry, storage, QuarrySettings(lazy_load='allow'))

    print("1. LAZY LOADING (the N+1 pattern)")
    print("-" * 70)
    storage.reset_log()
    posts = session.query('Post').all()
    total = sum(len(post.comments) for post in posts)
    print(f"{len(posts)} posts, {total} comments -> {storage.fetch_count} fetches")
    print()

    print("2. EAGER LOADING")
    print("-" * 70)
    storage.reset_log()
    posts = session.query('Post').includes('comments', 'author').all()
    total = sum(len(post.comments) for post in posts)
    print(f"{len(posts)} posts, {total} comments -> {storage.fetch_count} fetches")
    print()

    print("3. PROJECTION")
    print("-" * 70)
    post = session.query('Post').only('title', 'created_at').first()
    print(f"Record: {post.to_dict()}")
    try:
        post.status
    except AttributeError as exc:
        print(f"Reading a non-projected field fails: {exc}")
    print()

    print("4. SCOPES AND INDICES")
    print("-" * 70)
    recent = session.query('Post').scope('published', 'recent').includes('comments')
    for key, value in recent.explain().items():
        print(f"  {key}: {value}")
    print(f"Titles: {[p.title for p in recent]}")
    print()

    print("Statistics:", session.get_stats())


if __name__ == "__main__":
    configure_logging("INFO")
    demo()
