from catalog_ingest.sync.hashing import canonical_json, content_hash, make_document, volatile_serializer


def test_hash_ignores_key_order():
    assert content_hash({"a": 1, "b": [1, 2]}) == content_hash({"b": [1, 2], "a": 1})


def test_hash_sees_value_changes():
    assert content_hash({"a": 1}) != content_hash({"a": 2})
    assert content_hash({"a": [1, 2]}) != content_hash({"a": [2, 1]})


def test_canonical_json_is_compact_and_unicode():
    assert canonical_json({"b": "é", "a": None}) == '{"a":null,"b":"é"}'


def test_volatile_keys_are_ignored_at_any_depth():
    serializer = volatile_serializer(["extractedAt"])
    first = {"name": "Organizational Behavior", "provenance": {"sourceFile": "a.pdf", "extractedAt": "2024-01-01"}}
    second = {"name": "Organizational Behavior", "provenance": {"sourceFile": "a.pdf", "extractedAt": "2025-06-30"}}

    assert content_hash(first, serializer) == content_hash(second, serializer)
    assert content_hash(first) != content_hash(second)


def test_make_document():
    doc = make_document("courses", "C715", {"courseCode": "C715"})

    assert doc.collection_name == "courses"
    assert doc.document_id == "C715"
    assert doc.content_hash == content_hash({"courseCode": "C715"})
    assert len(doc.content_hash) == 64
