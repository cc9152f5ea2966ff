"""Tests for core types."""

import pytest
from uuid import uuid4

from dataman.core.errors import FaultError, ResolutionError
from dataman.core.predicate import ComparisonOperator
from dataman.core.types import ChangeSet, FetchRequest, ManagedRecord, ObjectID


class Book(ManagedRecord):
    __entity__ = "Book"
    
    title: str
    pages: int = 0


class TestObjectID:
    """Tests for ObjectID."""
    
    def test_uri_round_trip(self):
        """The URI form parses back to an equal identifier."""
        oid = ObjectID(entity="Book")
        
        assert oid.uri == f"dataman://Book/{oid.key}"
        assert ObjectID.parse(oid.uri) == oid
        assert str(oid) == oid.uri
    
    def test_hashable_and_frozen(self):
        key = uuid4()
        first = ObjectID(entity="Book", key=key)
        second = ObjectID(entity="Book", key=key)
        
        assert {first, second} == {first}
        with pytest.raises(Exception):
            first.entity = "Other"
    
    @pytest.mark.parametrize("uri", [
        "http://Book/123",
        "dataman://Book/not-a-uuid",
        "Book",
    ])
    def test_parse_invalid(self, uri):
        with pytest.raises(ResolutionError):
            ObjectID.parse(uri)


class TestManagedRecord:
    """Tests for detached ManagedRecord behavior."""
    
    def test_detached_record_is_plain_model(self):
        """Without a context, a record validates and assigns like any model."""
        book = Book(title="Dune", pages=412)
        book.pages = 500
        
        assert book.pages == 500
        assert book.object_id is None
        assert book.context is None
        assert not book.is_inserted
        assert not book.is_fault
    
    def test_assignment_validated(self):
        book = Book(title="Dune")
        
        with pytest.raises(Exception):
            book.pages = "many"
    
    def test_detached_fault_raises(self):
        """A fault with no context cannot be loaded."""
        book = Book.model_construct()
        book._turn_into_fault()
        
        with pytest.raises(FaultError):
            book.title
    
    def test_field_values_are_copies(self):
        book = Book(title="Dune")
        values = book._field_values()
        values["title"] = "Other"
        
        assert book.title == "Dune"


class TestChangeSet:
    """Tests for ChangeSet."""
    
    def test_empty(self):
        changes = ChangeSet()
        
        assert changes.is_empty()
        assert len(changes) == 0
    
    def test_len_counts_all_kinds(self):
        changes = ChangeSet(
            inserted={ObjectID(entity="Book"): {"title": "A"}},
            updated={ObjectID(entity="Book"): {"pages": 2}},
            deleted={ObjectID(entity="Book")},
        )
        
        assert not changes.is_empty()
        assert len(changes) == 3


class TestFetchRequest:
    """Tests for FetchRequest."""
    
    def test_zero_pagination_is_unset(self):
        """0 and negative pagination values are treated as not set."""
        request = FetchRequest.build("Book", limit=0, offset=-1, batch=0)
        
        assert request.limit is None
        assert request.offset is None
        assert request.batch_size is None
    
    def test_positive_pagination_applies(self):
        request = FetchRequest.build("Book", limit=10, offset=5, batch=3)
        
        assert (request.limit, request.offset, request.batch_size) == (10, 5, 3)
    
    def test_defaults(self):
        request = FetchRequest.build("Book")
        
        assert request.predicate is None
        assert request.sort == []
        assert request.returns_faults
        assert not request.returns_distinct
    
    def test_filter_and_sort(self):
        request = FetchRequest.build("Book", filter={"pages >": 100}, sort={"title": True})
        
        assert request.predicate.comparisons[0].operator == ComparisonOperator.GT
        assert request.field_names == ["pages", "title"]
