"""
Tests for the parents file.
"""

from pathlib import Path

import pytest

from gee_rebase.parentage_store import ParentageStore


@pytest.fixture()
def parents_file(tmp_path: Path) -> Path:
    return tmp_path / "repo" / ".gee" / "parents"


class TestParentageStore:
    def test_load_creates_missing_file(self, parents_file):
        store = ParentageStore(parents_file)
        assert store.branches() == []
        assert parents_file.exists()

    def test_round_trip_with_awkward_names(self, parents_file):
        store = ParentageStore(parents_file)
        store.set_parent("feature one", "main", merge_base="abc123")
        store.set_parent("quote'd", "feature one")
        store.set_parent("pr_7", "upstream/refs/pull/7/head", merge_base="def456")
        store.save()

        reloaded = ParentageStore(parents_file)
        assert reloaded.get_parent("feature one") == "main"
        assert reloaded.get_merge_base("feature one") == "abc123"
        assert reloaded.get_parent("quote'd") == "feature one"
        assert reloaded.get_merge_base("quote'd") is None
        assert reloaded.get_parent("pr_7") == "upstream/refs/pull/7/head"

    def test_second_load_keeps_the_in_memory_table(self, parents_file):
        parents_file.parent.mkdir(parents=True)
        parents_file.write_text("feature main abc123\n", encoding="utf-8")
        store = ParentageStore(parents_file)
        store.load()
        store.set_parent("other", "feature")

        parents_file.write_text("feature elsewhere fff000\n", encoding="utf-8")
        store.load()

        assert store.get_parent("feature") == "main"
        assert store.get_merge_base("feature") == "abc123"
        assert store.get_parent("other") == "feature"

    def test_file_is_sorted_by_branch(self, parents_file):
        store = ParentageStore(parents_file)
        store.set_parent("zeta", "main")
        store.set_parent("alpha", "main")
        store.save()
        lines = parents_file.read_text(encoding="utf-8").splitlines()
        assert [ln.split()[0] for ln in lines] == ["alpha", "zeta"]

    def test_unparseable_lines_are_skipped(self, parents_file):
        parents_file.parent.mkdir(parents=True)
        parents_file.write_text("good main sha\n'unterminated main\nlonely\n", encoding="utf-8")
        store = ParentageStore(parents_file)
        assert store.branches() == ["good"]

    def test_missing_branch_defaults_to_main(self, parents_file, caplog):
        store = ParentageStore(parents_file)
        assert store.get_parent("mystery") == "main"
        assert "Strangely, mystery was missing" in caplog.text
        assert store.has_record("mystery")

    def test_main_parent_is_upstream_main(self, parents_file):
        store = ParentageStore(parents_file, main_branch="master", upstream_remote="up")
        assert store.get_parent("master") == "up/master"

    def test_set_parent_keeps_previous_merge_base(self, parents_file):
        store = ParentageStore(parents_file)
        store.set_parent("b", "main", merge_base="1111")
        store.set_parent("b", "a")
        assert store.get_parent("b") == "a"
        assert store.get_merge_base("b") == "1111"

    def test_remove_splices_children_onto_former_parent(self, parents_file):
        store = ParentageStore(parents_file)
        store.set_parent("a", "main")
        store.set_parent("b", "a")
        store.set_parent("c", "b")
        store.set_parent("d", "b")

        assert store.remove("b") == "a"
        assert not store.has_record("b")
        assert store.get_parent("c") == "a"
        assert store.get_parent("d") == "a"

    def test_remove_unknown_branch_splices_onto_main(self, parents_file):
        store = ParentageStore(parents_file)
        store.set_parent("orphan", "ghost")
        assert store.remove("ghost") == "main"
        assert store.get_parent("orphan") == "main"

    def test_children(self, parents_file):
        store = ParentageStore(parents_file)
        store.set_parent("a", "main")
        store.set_parent("b", "a")
        store.set_parent("c", "b")
        store.set_parent("x", "main")
        assert store.children_of("a") == ["b"]
        assert store.all_children_of("a") == {"b", "c"}
        assert store.all_children_of("main") == {"a", "b", "c", "x"}

    def test_all_children_of_survives_cycles(self, parents_file):
        store = ParentageStore(parents_file)
        store.set_parent("a", "b")
        store.set_parent("b", "a")
        assert store.all_children_of("a") == {"b"}

    def test_refuses_to_write_empty_table_over_populated_file(self, parents_file, caplog):
        parents_file.parent.mkdir(parents=True)
        parents_file.write_text("ignored main\n", encoding="utf-8")
        store = ParentageStore(parents_file)
        store.load()
        store.remove("ignored")
        store.save()
        assert "Almost wrote empty parents file!" in caplog.text
        assert parents_file.read_text(encoding="utf-8") == "ignored main\n"

    def test_save_before_load_is_a_no_op(self, parents_file):
        ParentageStore(parents_file).save()
        assert not parents_file.exists()

    def test_context_manager_saves_on_error(self, parents_file):
        with pytest.raises(RuntimeError):
            with ParentageStore(parents_file) as store:
                store.set_parent("a", "main", merge_base="abc")
                raise RuntimeError("boom")
        assert ParentageStore(parents_file).get_merge_base("a") == "abc"
