"""
Tests for the MongoDB helpers.
"""

import pytest
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents, serialize, reset_wines
from schemas import Wine


def test_create_document_from_model(test_db):
    wine_id = create_document(test_db, "wine", Wine(name="A", description="Good one", price=10, variety="x"))

    docs = get_documents(test_db, "wine")
    assert len(docs) == 1
    assert str(docs[0]["_id"]) == wine_id
    assert docs[0]["created_at"] is not None


def test_unique_wine_name_index(test_db):
    create_document(test_db, "wine", {"name": "A"})
    with pytest.raises(DuplicateKeyError):
        create_document(test_db, "wine", {"name": "A"})


def test_serialize_converts_id(test_db):
    create_document(test_db, "wine", {"name": "A"})
    doc = serialize(test_db["wine"].find_one())
    assert "_id" not in doc
    assert isinstance(doc["id"], str)
    assert serialize(None) is None


def test_reset_wines(test_db):
    create_document(test_db, "wine", {"name": "Old"})
    created = reset_wines(test_db, [{"name": "New 1"}, {"name": "New 2"}])

    assert created == 2
    assert sorted(d["name"] for d in get_documents(test_db, "wine")) == ["New 1", "New 2"]
    assert reset_wines(test_db) == 0
    assert get_documents(test_db, "wine") == []
