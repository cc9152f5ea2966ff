"""Tests for filter-key parsing and predicate building."""

from datetime import datetime

import pytest

from dataman.core.predicate import (
    Comparison,
    ComparisonOperator,
    build_comparison,
    build_predicate,
    build_sort,
    parse_filter_key,
)


class TestParseFilterKey:
    """Tests for the `<field> <op>` key grammar."""
    
    @pytest.mark.parametrize("key,operator", [
        ("age <", ComparisonOperator.LT),
        ("age <=", ComparisonOperator.LE),
        ("age =", ComparisonOperator.EQ),
        ("age >=", ComparisonOperator.GE),
        ("age =>", ComparisonOperator.GE),
        ("age >", ComparisonOperator.GT),
    ])
    def test_operators(self, key, operator):
        """Each operator token maps to its enum member."""
        assert parse_filter_key(key) == ("age", operator)
    
    def test_whitespace_tolerated(self):
        """Leading, inner, and trailing whitespace are optional."""
        assert parse_filter_key("  age>=  ") == ("age", ComparisonOperator.GE)
        assert parse_filter_key("age >= ") == ("age", ComparisonOperator.GE)
    
    def test_plain_field_is_equality(self):
        """A bare field name compares with equality."""
        assert parse_filter_key("name") == ("name", ComparisonOperator.EQ)
    
    def test_unparseable_key_taken_literally(self):
        """A key that doesn't fit the grammar is used as the field name."""
        assert parse_filter_key("age !=") == ("age !=", ComparisonOperator.EQ)
        assert parse_filter_key("first name >") == ("first name >", ComparisonOperator.EQ)


class TestBuildComparison:
    """Tests for single clauses."""
    
    def test_none_forces_is_null(self):
        """A None value means "is null" whatever operator the key carries."""
        comparison = build_comparison("age >=", None)
        
        assert comparison.field == "age"
        assert comparison.operator == ComparisonOperator.IS_NULL
    
    def test_rendering(self):
        assert str(build_comparison("age >= ", 18)) == "(age >= 18)"
        assert str(build_comparison("name", None)) == "(name IS NULL)"
    
    def test_matches(self):
        """In-memory evaluation follows the operator."""
        comparison = build_comparison("age >", 30)
        
        assert comparison.matches({"age": 31})
        assert not comparison.matches({"age": 30})
        assert not comparison.matches({"age": None})
        assert not comparison.matches({})
    
    def test_incomparable_types_do_not_match(self):
        comparison = build_comparison("age <", 30)
        
        assert not comparison.matches({"age": "thirty"})
    
    def test_to_sql(self):
        """Clauses compare json_extract of the data column."""
        clause, params = build_comparison("age >=", 18).to_sql("data")
        
        assert clause == "(json_extract(data, ?) >= ?)"
        assert params == ['$."age"', 18]
    
    def test_to_sql_null(self):
        clause, params = build_comparison("email", None).to_sql("data")
        
        assert clause == "(json_extract(data, ?) IS NULL)"
        assert params == ['$."email"']
    
    def test_to_sql_datetime_param(self):
        """Datetimes are compared in their stored ISO form."""
        when = datetime(2024, 5, 1, 12, 30)
        _, params = build_comparison("born <", when).to_sql("data")
        
        assert params[1] == "2024-05-01T12:30:00"


class TestBuildPredicate:
    """Tests for ANDed predicates."""
    
    def test_empty_filter(self):
        assert build_predicate(None) is None
        assert build_predicate({}) is None
    
    def test_caller_order_preserved(self):
        """Clauses keep the order the caller wrote them in."""
        predicate = build_predicate({"name": "Ada", "age >=": 18, "email": None})
        
        assert predicate.fields == ["name", "age", "email"]
        assert str(predicate) == "(name = 'Ada') AND (age >= 18) AND (email IS NULL)"
    
    def test_pairs_accepted(self):
        """An iterable of pairs works like a mapping."""
        predicate = build_predicate([("age <", 65), ("age >", 17)])
        
        assert [c.operator for c in predicate.comparisons] == [ComparisonOperator.LT, ComparisonOperator.GT]
        assert predicate.matches({"age": 40})
        assert not predicate.matches({"age": 70})
    
    def test_to_sql_joins_with_and(self):
        clause, params = build_predicate({"name": "Ada", "age >": 3}).to_sql()
        
        assert clause == "(json_extract(data, ?) = ?) AND (json_extract(data, ?) > ?)"
        assert params == ['$."name"', "Ada", '$."age"', 3]
    
    def test_comparison_is_immutable(self):
        comparison = Comparison(field="age", operator=ComparisonOperator.EQ, value=1)
        
        with pytest.raises(Exception):
            comparison.value = 2


class TestBuildSort:
    """Tests for sort keys."""
    
    def test_sort_order(self):
        keys = build_sort({"age": False, "name": True})
        
        assert [(k.field, k.ascending) for k in keys] == [("age", False), ("name", True)]
    
    def test_empty_sort(self):
        assert build_sort(None) == []
