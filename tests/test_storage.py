"""Tests for the blob stores and slot-key slugs."""

import pytest

from xianxia.storage import FileBlobStore, MemoryBlobStore, slugify


def test_slugify_basic():
    assert slugify("xianxia_save_v2") == "xianxia-save-v2"


def test_slugify_unicode():
    assert slugify("Café Münch") == "cafe-munch"


def test_slugify_empty():
    assert slugify("") == "untitled"


@pytest.fixture(params=["memory", "file"])
def store(request, clean_test_data):
    if request.param == "memory":
        return MemoryBlobStore()
    return FileBlobStore(clean_test_data)


def test_get_missing(store):
    assert store.get("slot") is None


def test_set_then_get(store):
    store.set("slot", '{"turn": 1}')
    assert store.get("slot") == '{"turn": 1}'


def test_set_overwrites(store):
    store.set("slot", "a")
    store.set("slot", "b")
    assert store.get("slot") == "b"


def test_remove(store):
    store.set("slot", "a")
    store.remove("slot")
    assert store.get("slot") is None


def test_remove_missing_is_noop(store):
    store.remove("never-written")
    assert store.get("never-written") is None


def test_keys_are_independent(store):
    store.set("a", "1")
    store.set("b", "2")
    store.remove("a")
    assert store.get("b") == "2"


def test_file_store_layout(clean_test_data):
    store = FileBlobStore(clean_test_data)
    store.set("xianxia_save_v2", "道")
    path = clean_test_data / "saves" / "xianxia-save-v2.json"
    assert path.read_text(encoding="utf-8") == "道"
    assert not path.with_suffix(".tmp").exists()


def test_file_store_survives_new_instance(clean_test_data):
    FileBlobStore(clean_test_data).set("slot", "kept")
    assert FileBlobStore(clean_test_data).get("slot") == "kept"
