"""
Property-based tests for dataset persistence and the checkpoint store.
"""

import os

import pytest
from hypothesis import given, strategies as st

from lexicon_harvester.data import read_header, read_input_keys, read_rows, write_rows
from lexicon_harvester.pipeline import CheckpointStore, ResultRecord, ResultSet
from lexicon_harvester.utils.errors import DatasetError

from conftest import TEST_SCHEMA


cell_text = st.text(
    alphabet=st.characters(blacklist_categories=('Cs', 'Cc')),
    max_size=20
)
word_keys = st.text(
    alphabet=st.characters(whitelist_categories=('Lo', 'Ll', 'Lu', 'Nd')),
    min_size=1,
    max_size=6
)


def make_rows(keys):
    return [{"word": key, "meaning": f"m-{key}", "note": ""} for key in keys]


class TestAtomicWrite:
    """Output rewrites leave either the old or the new complete file."""

    def test_write_then_read_preserves_rows_and_order(self, tmp_path):
        path = tmp_path / "out.csv"
        rows = [
            {"word": "你好", "meaning": "xin chào", "note": "a, b"},
            {"word": "谢谢", "meaning": 'cảm ơn "nhiều"', "note": "line\nbreak"},
        ]

        written = write_rows(path, TEST_SCHEMA.fields, rows)

        assert written == 2
        assert read_header(path) == list(TEST_SCHEMA.fields)
        assert read_rows(path) == rows

    def test_no_temporary_file_left_behind(self, tmp_path):
        path = tmp_path / "out.csv"
        write_rows(path, TEST_SCHEMA.fields, make_rows(["a", "b"]))

        assert sorted(os.listdir(tmp_path)) == ["out.csv"]

    def test_extra_fields_are_ignored(self, tmp_path):
        path = tmp_path / "out.csv"
        write_rows(path, TEST_SCHEMA.fields, [{"word": "a", "meaning": "x", "note": "", "debug": "drop"}])

        assert read_header(path) == ["word", "meaning", "note"]

    def test_failed_write_keeps_previous_file(self, tmp_path, monkeypatch):
        path = tmp_path / "out.csv"
        write_rows(path, TEST_SCHEMA.fields, make_rows(["a"]))
        before = path.read_bytes()

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)

        with pytest.raises(DatasetError):
            write_rows(path, TEST_SCHEMA.fields, make_rows(["a", "b"]))

        assert path.read_bytes() == before
        assert sorted(os.listdir(tmp_path)) == ["out.csv"]

    def test_unencodable_values_raise_dataset_error(self, tmp_path):
        path = tmp_path / "out.csv"
        write_rows(path, TEST_SCHEMA.fields, make_rows(["a"]))
        before = path.read_bytes()
        rows = [{"word": "你好", "meaning": "xin chào", "note": ""}]

        with pytest.raises(DatasetError) as exc_info:
            write_rows(path, TEST_SCHEMA.fields, rows, encoding="ascii")

        assert exc_info.value.details["path"] == str(path)
        assert path.read_bytes() == before
        assert sorted(os.listdir(tmp_path)) == ["out.csv"]

    @given(keys=st.lists(word_keys, unique=True, max_size=15), note=cell_text)
    def test_persist_is_idempotent_property(self, tmp_path_factory, keys, note):
        """Persisting the same result set twice yields byte-identical files."""
        directory = tmp_path_factory.mktemp("persist")
        store = CheckpointStore(directory / "out.csv", TEST_SCHEMA)

        result_set = ResultSet(TEST_SCHEMA)
        for key in keys:
            result_set.add(ResultRecord.from_values(TEST_SCHEMA, key, {"meaning": key, "note": note}))

        store.persist(result_set)
        first = (directory / "out.csv").read_bytes()
        store.persist(result_set)

        assert (directory / "out.csv").read_bytes() == first


class TestInputKeys:

    def test_keys_are_stripped_and_blanks_dropped(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("word,level\n 你好 ,1\n,2\n\n谢谢,1\n你好,3\n", encoding="utf-8")

        assert read_input_keys(path, "word") == ["你好", "谢谢", "你好"]

    def test_missing_file_is_an_error(self, tmp_path):
        with pytest.raises(DatasetError):
            read_input_keys(tmp_path / "missing.csv", "word")

    def test_missing_key_column_is_an_error(self, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("term,level\n你好,1\n", encoding="utf-8")

        with pytest.raises(DatasetError) as exc_info:
            read_input_keys(path, "word")

        assert exc_info.value.details["columns"] == ["term", "level"]


class TestCheckpointStore:
    """Checkpoint correctness and the append-only result set."""

    def test_missing_output_means_nothing_checkpointed(self, output_path):
        store = CheckpointStore(output_path, TEST_SCHEMA)

        assert store.load() == set()
        assert len(store.result_set()) == 0

    def test_load_returns_keys_of_prior_output(self, output_path):
        write_rows(output_path, TEST_SCHEMA.fields, make_rows(["A", "B"]))
        store = CheckpointStore(output_path, TEST_SCHEMA)

        assert store.load() == {"A", "B"}
        assert store.result_set().get("A")["meaning"] == "m-A"

    def test_load_happens_once(self, output_path):
        write_rows(output_path, TEST_SCHEMA.fields, make_rows(["A"]))
        store = CheckpointStore(output_path, TEST_SCHEMA)
        store.load()

        write_rows(output_path, TEST_SCHEMA.fields, make_rows(["A", "B"]))

        assert store.load() == {"A"}

    def test_prior_rows_with_blank_or_duplicate_keys_are_dropped(self, output_path):
        output_path.write_text(
            "word,meaning,note\nA,first,\n,orphan,\nA,second,\nB,b,\n",
            encoding="utf-8"
        )
        store = CheckpointStore(output_path, TEST_SCHEMA)

        assert store.load() == {"A", "B"}
        assert store.result_set().get("A")["meaning"] == "first"

    def test_unreadable_output_is_moved_aside(self, output_path):
        output_path.write_bytes(b"word,meaning\n\xff\xfe\xfa broken\n")
        store = CheckpointStore(output_path, TEST_SCHEMA)

        assert store.load() == set()
        assert not output_path.exists()
        assert output_path.with_name(output_path.name + ".unreadable").exists()

    def test_output_without_key_column_is_moved_aside(self, output_path):
        output_path.write_text("term,meaning\nA,x\n", encoding="utf-8")
        store = CheckpointStore(output_path, TEST_SCHEMA)

        assert store.load() == set()
        assert output_path.with_name("results.csv.unreadable").exists()

    def test_merge_never_overwrites_existing_rows(self, output_path):
        write_rows(output_path, TEST_SCHEMA.fields, make_rows(["A"]))
        store = CheckpointStore(output_path, TEST_SCHEMA)
        result_set = store.result_set()

        store.merge(result_set, ResultRecord.from_values(TEST_SCHEMA, "A", {"meaning": "new"}))
        store.merge(result_set, ResultRecord.from_values(TEST_SCHEMA, "C", {"meaning": "c"}))

        assert list(result_set) == ["A", "C"]
        assert result_set.get("A")["meaning"] == "m-A"

    def test_result_set_is_a_copy(self, output_path):
        write_rows(output_path, TEST_SCHEMA.fields, make_rows(["A"]))
        store = CheckpointStore(output_path, TEST_SCHEMA)

        first = store.result_set()
        first.add(ResultRecord.from_values(TEST_SCHEMA, "B", {"meaning": "b"}))

        assert "B" not in store.result_set()

    @given(
        prior=st.lists(word_keys, unique=True, max_size=10),
        new=st.lists(word_keys, max_size=10)
    )
    def test_prior_rows_survive_any_merge_property(self, tmp_path_factory, prior, new):
        """Rows loaded at start are unchanged after merging arbitrary new records."""
        path = tmp_path_factory.mktemp("merge") / "out.csv"
        write_rows(path, TEST_SCHEMA.fields, make_rows(prior))
        store = CheckpointStore(path, TEST_SCHEMA)
        result_set = store.result_set()

        for key in new:
            store.merge(result_set, ResultRecord.failure(TEST_SCHEMA, key, attempts=1))
        store.persist(result_set)

        rows = {row["word"]: row for row in read_rows(path)}
        for key in prior:
            assert rows[key]["meaning"] == f"m-{key}"
        assert len(rows) == len(set(prior) | set(new))
