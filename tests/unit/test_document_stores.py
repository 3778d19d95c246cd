"""
Store contract tests, run against both the in-memory and the SQL backend.
"""

import pytest

from agenda.core.exceptions import ValidationError
from agenda.db.session import create_session_factory, create_store_engine, create_tables
from agenda.repositories import InMemoryDocumentStore, SqlDocumentStore
from agenda.repositories.tree import generate_push_id, split_path


@pytest.fixture(params=["memory", "sql"])
def doc_store(request):
    if request.param == "memory":
        yield InMemoryDocumentStore()
        return
    engine = create_store_engine("sqlite:///:memory:")
    create_tables(engine)
    yield SqlDocumentStore(create_session_factory(engine))
    engine.dispose()


class TestReadWrite:
    def test_missing_paths_read_as_none(self, doc_store):
        assert doc_store.read("users") is None
        assert doc_store.read("users/u1") is None
        assert doc_store.read("users/u1/email") is None

    def test_nested_write_and_read(self, doc_store):
        doc_store.write("users/u1", {"email": "a@b.c", "businessAccess": {"b1": {"role": "viewer"}}})

        assert doc_store.read("users/u1/email") == "a@b.c"
        assert doc_store.read("users/u1/businessAccess/b1/role") == "viewer"
        assert doc_store.read("users") == {
            "u1": {"email": "a@b.c", "businessAccess": {"b1": {"role": "viewer"}}}
        }

    def test_deep_write_creates_parents(self, doc_store):
        doc_store.write("businesses/b1/services/s1/name", "Corte")
        assert doc_store.read("businesses/b1") == {"services": {"s1": {"name": "Corte"}}}

    def test_none_deletes_and_prunes(self, doc_store):
        doc_store.write("users/u1", {"profile": {"name": "A"}})
        doc_store.write("users/u1/profile/name", None)
        assert doc_store.read("users/u1") is None

    def test_read_returns_copies(self, doc_store):
        doc_store.write("users/u1", {"tags": {"a": 1}})
        value = doc_store.read("users/u1")
        value["tags"]["a"] = 2
        assert doc_store.read("users/u1/tags/a") == 1

    def test_update_merges(self, doc_store):
        doc_store.write("users/u1", {"email": "a@b.c", "isBlocked": True})
        doc_store.update("users/u1", {"isBlocked": False, "blockedReason": None})
        assert doc_store.read("users/u1") == {"email": "a@b.c", "isBlocked": False}

    def test_root_write_rejected(self, doc_store):
        with pytest.raises(ValidationError):
            doc_store.write("", {"x": 1})


class TestPatch:
    def test_multi_path_patch_lands_together(self, doc_store):
        doc_store.patch(
            {
                "businesses/b1/isActive": False,
                "users/u1/isBlocked": True,
                "users/u2/isBlocked": True,
            }
        )
        assert doc_store.read("businesses/b1/isActive") is False
        assert set(doc_store.read("users")) == {"u1", "u2"}

    def test_bad_path_applies_nothing(self, doc_store):
        doc_store.write("users/u1/isBlocked", False)
        with pytest.raises(ValidationError):
            doc_store.patch({"users/u1/isBlocked": True, "users/u$2/isBlocked": True})
        assert doc_store.read("users/u1/isBlocked") is False


class TestSubscriptions:
    def test_immediate_then_on_change(self, doc_store):
        seen = []
        doc_store.subscribe("businesses/b1", seen.append)
        doc_store.write("businesses/b1/name", "Uno")
        doc_store.write("businesses/b2/name", "Dos")

        assert seen == [None, {"name": "Uno"}]

    def test_parent_and_child_writes_are_delivered(self, doc_store):
        seen = []
        doc_store.subscribe("businesses/b1/license", seen.append)
        doc_store.write("businesses/b1", {"license": {"isActive": True}})
        doc_store.write("businesses/b1/license/isActive", False)

        assert seen == [None, {"isActive": True}, {"isActive": False}]

    def test_unsubscribe_stops_delivery(self, doc_store):
        seen = []
        handle = doc_store.subscribe("users/u1", seen.append)
        handle.unsubscribe()
        handle.unsubscribe()
        doc_store.write("users/u1/email", "a@b.c")

        assert seen == [None]
        assert handle.active is False

    def test_failing_listener_does_not_stop_others(self, doc_store):
        def broken(value):
            if value is not None:
                raise RuntimeError("listener bug")

        seen = []
        doc_store.subscribe("users/u1", broken)
        doc_store.subscribe("users/u1", seen.append)
        doc_store.write("users/u1/email", "a@b.c")

        assert seen[-1] == {"email": "a@b.c"}


class TestKeys:
    def test_push_ids_sort_by_time(self):
        first = generate_push_id(now_ms=1_700_000_000_000)
        second = generate_push_id(now_ms=1_700_000_000_001)
        assert len(first) == 20
        assert first < second

    def test_generated_keys_are_unique(self, doc_store):
        keys = {doc_store.generate_key("notifications") for _ in range(200)}
        assert len(keys) == 200

    @pytest.mark.parametrize("path", ["users/a.b", "users/a#b", "users/a$b", "users/a[0]"])
    def test_forbidden_characters(self, path):
        with pytest.raises(ValidationError):
            split_path(path)

    def test_outer_slashes_are_stripped(self):
        assert split_path("/users/u1/") == ["users", "u1"]
        assert split_path("/") == []

    def test_empty_segment_is_rejected(self):
        with pytest.raises(ValidationError):
            split_path("users//u1")


class TestMemoryCopyOnWrite:
    def test_untouched_branches_are_shared(self):
        store = InMemoryDocumentStore()
        store.patch(
            {
                "businesses/b1": {"name": "Uno", "services": {"s1": {"name": "Corte"}}},
                "businesses/b2": {"name": "Dos"},
                "users/u1": {"email": "a@b.c"},
            }
        )
        before = store._tree

        store.write("businesses/b1/services/s1/name", "Tinte")

        after = store._tree
        assert after is not before
        assert after["users"] is before["users"]
        assert after["businesses"]["b2"] is before["businesses"]["b2"]
        assert after["businesses"]["b1"] is not before["businesses"]["b1"]
        assert before["businesses"]["b1"]["services"]["s1"]["name"] == "Corte"
        assert store.read("businesses/b1/services/s1/name") == "Tinte"

    def test_prune_leaves_previous_tree_intact(self):
        store = InMemoryDocumentStore({"users/u1": {"email": "a@b.c"}, "users/u2": {"email": "d@e.f"}})
        before = store._tree

        store.write("users/u1", None)

        assert "u1" in before["users"]
        assert store.read("users") == {"u2": {"email": "d@e.f"}}
