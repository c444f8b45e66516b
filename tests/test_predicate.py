"""
Tests for predicate trees and scopes.
"""

import pytest

from quarry.query.predicate import (
    And,
    Comparison,
    Not,
    Or,
    conjoin,
    conjuncts,
    describe,
    eq,
    from_fragment,
    in_,
    is_null,
    where,
)
from quarry.query.scope import Scope, merge_limit, merge_ordering


ROW = {'id': 1, 'status': 'published', 'score': 10, 'deleted_at': None}


class TestComparison:
    @pytest.mark.parametrize('predicate,expected', [
        (eq('status', 'published'), True),
        (where('status', '!=', 'published'), False),
        (where('score', '>', 5), True),
        (where('score', '>=', 10), True),
        (where('score', '<', 10), False),
        (where('score', '<=', 10), True),
        (in_('id', [1, 2]), True),
        (in_('id', []), False),
        (is_null('deleted_at'), True),
        (is_null('deleted_at', False), False),
    ])
    def test_evaluate(self, predicate, expected):
        assert predicate.evaluate(ROW) is expected

    def test_null_never_matches_comparison(self):
        assert not eq('deleted_at', None).evaluate(ROW)
        assert not where('deleted_at', '!=', 'x').evaluate(ROW)

    def test_incomparable_types_do_not_match(self):
        assert not where('status', '>', 3).evaluate(ROW)
        assert not (~where('status', '>', 3)).evaluate(ROW)

    @pytest.mark.parametrize('predicate,expected', [
        (eq('deleted_at', 'x'), None),
        (~eq('deleted_at', 'x'), None),
        (~where('score', '=', None), None),
        (in_('deleted_at', [1]), None),
        (in_('deleted_at', []), False),
        (~in_('deleted_at', []), True),
        (in_('id', [2, None]), None),
        (eq('deleted_at', 'x') & eq('id', 2), False),
        (eq('deleted_at', 'x') & eq('id', 1), None),
        (eq('deleted_at', 'x') | eq('id', 1), True),
        (eq('deleted_at', 'x') | eq('id', 2), None),
        (~(eq('deleted_at', 'x') | eq('id', 2)), None),
    ])
    def test_three_valued_logic(self, predicate, expected):
        assert predicate.truth(ROW) is expected

    def test_negated_null_comparison_never_matches(self):
        assert not (~eq('deleted_at', 'x')).evaluate(ROW)
        assert not (~where('deleted_at', '<', 3)).evaluate(ROW)
        assert (~eq('status', 'draft')).evaluate(ROW)

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            Comparison('score', '~=', 3)

    def test_membership_values_become_tuple(self):
        assert in_('id', [1, 2]) == in_('id', (1, 2))


class TestComposition:
    def test_operators(self):
        published = eq('status', 'published')
        popular = where('score', '>', 5)

        assert (published & popular) == And((published, popular))
        assert (published | popular) == Or((published, popular))
        assert ~published == Not(published)
        assert not (~published).evaluate(ROW)
        assert (eq('status', 'draft') | popular).evaluate(ROW)

    def test_conjoin_flattens_and_deduplicates(self):
        a, b, c = eq('id', 1), eq('status', 'published'), where('score', '>', 1)
        combined = conjoin([And((a, b)), None, b, And((c, a))])
        assert combined == And((a, b, c))

    def test_conjoin_edge_cases(self):
        a = eq('id', 1)
        assert conjoin([]) is None
        assert conjoin([None]) is None
        assert conjoin([a, a]) == a

    def test_conjuncts(self):
        a, b = eq('id', 1), eq('status', 'published')
        assert conjuncts(None) == ()
        assert conjuncts(a) == (a,)
        assert conjuncts(And((a, b))) == (a, b)

    def test_fields(self):
        predicate = eq('id', 1) & ~(eq('status', 'x') | is_null('score'))
        assert list(predicate.fields()) == ['id', 'status', 'score']

    def test_from_fragment(self):
        assert from_fragment({'status': 'published'}) == eq('status', 'published')
        assert from_fragment({'status': 'published', 'score': 1}) == And(
            (eq('status', 'published'), eq('score', 1))
        )
        with pytest.raises(ValueError):
            from_fragment({})
        with pytest.raises(TypeError):
            from_fragment("status = 'published'")

    def test_describe(self):
        assert describe(None) == {}
        assert describe(eq('id', 1) | ~is_null('score')) == {
            'or': [
                {'field': 'id', 'op': '=', 'value': 1},
                {'not': {'field': 'score', 'op': 'is_null', 'value': True}},
            ]
        }


class TestScope:
    def test_define_deduplicates(self):
        scope = Scope.define('Post', 'x', includes=['comments', 'comments'], only=['title', 'title'])
        assert scope.includes == ('comments',)
        assert scope.projection == ('title',)

    def test_merge_same_scope_is_identity(self):
        scope = Scope.define('Post', 'published', where={'status': 'published'}, includes=['comments'])
        assert scope.merge(scope) is scope

    def test_merge(self):
        published = Scope.define('Post', 'published', where={'status': 'published'}, limit=10)
        popular = Scope.define('Post', 'popular', where=where('score', '>', 5),
                               includes=['comments'], order_by=['-score'], limit=3)
        merged = published.merge(popular)

        assert merged.name == 'published+popular'
        assert merged.predicate == And((eq('status', 'published'), where('score', '>', 5)))
        assert merged.includes == ('comments',)
        assert merged.order_by == ('-score',)
        assert merged.limit == 3

    def test_merge_other_entity(self):
        with pytest.raises(ValueError):
            Scope.define('Post', 'a').merge(Scope.define('Comment', 'a'))

    def test_merge_ordering_first_mention_wins(self):
        assert merge_ordering(['-created_at'], ['created_at', 'title']) == ('-created_at', 'title')

    def test_merge_limit(self):
        assert merge_limit(None, None) is None
        assert merge_limit(None, 4, 2) == 2
