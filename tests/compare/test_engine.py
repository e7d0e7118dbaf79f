# Copyright Red Hat
#
# tests/compare/test_engine.py - Comparison engine core tests.
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch
from datetime import datetime
from math import floor
import tempfile
import time
import errno
import json
import os

from treecmp import TreecmpArgumentError, TreecmpSystemError
from treecmp.compare import engine
from treecmp.compare.comparer import TreeComparer, compare_trees
from treecmp.compare.difftypes import DiffKind, EntryKind, Location
from treecmp.compare.engine import (
    CompareEngine,
    CompareResults,
    DifferenceRecord,
    content_equal,
)
from treecmp.compare.options import CompareOptions
from treecmp.compare.treewalk import PathEntry

from tests import have_root

from ._util import make_tree, summarize

timestamp = floor(datetime.now().timestamp())


class TestDifferenceRecord(unittest.TestCase):
    def test_description(self):
        rec = DifferenceRecord(
            "f1.txt",
            "d/f1.txt",
            DiffKind.SIZE_DIFFERS,
            Location.BOTH,
            size_a=2,
            size_b=4,
        )
        self.assertEqual(rec.description(), "size differs (2 != 4)")
        self.assertEqual(str(rec), "d/f1.txt: size differs (2 != 4) (both)")

    def test_description_type_differs(self):
        rec = DifferenceRecord(
            "sub",
            "sub",
            DiffKind.TYPE_DIFFERS,
            Location.BOTH,
            type_a=EntryKind.DIRECTORY,
            type_b=EntryKind.FILE,
        )
        self.assertEqual(rec.description(), "type differs (directory != file)")

    def test_description_simple_kinds(self):
        cases = {
            DiffKind.ONLY_IN_FIRST: "only in first folder",
            DiffKind.ONLY_IN_SECOND: "only in second folder",
            DiffKind.CONTENT_DIFFERS: "content differs",
            DiffKind.PERMISSION_ERROR: "permission denied",
        }
        for kind, desc in cases.items():
            rec = DifferenceRecord("a", "a", kind, Location.BOTH)
            self.assertEqual(rec.description(), desc)

    def test_to_dict_and_json(self):
        rec = DifferenceRecord(
            "f1.txt",
            "f1.txt",
            DiffKind.ONLY_IN_FIRST,
            Location.FIRST,
            type_a=EntryKind.FILE,
            file_type="text/plain",
        )
        d = rec.to_dict()
        self.assertEqual(d["kind"], "only_in_first")
        self.assertEqual(d["location"], "first")
        self.assertEqual(d["type_a"], "file")
        self.assertEqual(d["file_type"], "text/plain")
        self.assertNotIn("size_a", d)
        self.assertNotIn("type_b", d)
        self.assertEqual(json.loads(rec.json()), d)
        self.assertIn("\n", rec.json(pretty=True))

    def test_frozen(self):
        rec = DifferenceRecord("a", "a", DiffKind.CONTENT_DIFFERS, Location.BOTH)
        with self.assertRaises(AttributeError):
            rec.name = "b"


class TestCompareResults(unittest.TestCase):
    def setUp(self):
        self.rec_first = DifferenceRecord(
            "a", "a", DiffKind.ONLY_IN_FIRST, Location.FIRST
        )
        self.rec_size = DifferenceRecord(
            "b", "b", DiffKind.SIZE_DIFFERS, Location.BOTH, size_a=1, size_b=2
        )
        self.rec_second = DifferenceRecord(
            "c", "c", DiffKind.ONLY_IN_SECOND, Location.SECOND
        )
        self.results = CompareResults(
            [self.rec_first, self.rec_size, self.rec_second],
            CompareOptions(),
            timestamp,
            unreadable=[(Location.SECOND, "locked")],
        )

    def test_list_interface(self):
        """Test iteration, len, and getitem."""
        self.assertEqual(len(self.results), 3)
        self.assertEqual(self.results[1], self.rec_size)
        self.assertEqual(
            list(self.results), [self.rec_first, self.rec_size, self.rec_second]
        )

    def test_filter_properties(self):
        self.assertEqual(self.results.only_in_first, [self.rec_first])
        self.assertEqual(self.results.only_in_second, [self.rec_second])
        self.assertEqual(self.results.size_differs, [self.rec_size])
        self.assertEqual(self.results.content_differs, [])
        self.assertEqual(self.results.type_differs, [])
        self.assertEqual(self.results.permission_errors, [])

    def test_as_tuple(self):
        records, count = self.results.as_tuple()
        self.assertEqual(count, 3)
        self.assertEqual(records, [self.rec_first, self.rec_size, self.rec_second])
        # Returned list is a copy
        records.clear()
        self.assertEqual(len(self.results), 3)

    def test_paths_and_json(self):
        self.assertEqual(self.results.paths(), ["a", "b", "c"])
        data = json.loads(self.results.json())
        self.assertEqual(data["count"], 3)
        self.assertEqual(data["timestamp"], timestamp)
        self.assertEqual(len(data["differences"]), 3)
        self.assertEqual(
            data["unreadable"], [{"location": "second", "relative_path": "locked"}]
        )


class TestContentEqual(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name, data):
        path = os.path.join(self.tmp, name)
        with open(path, "wb") as fp:
            fp.write(data)
        return path

    def test_content_equal_small_chunks(self):
        a = self._write("a", b"0123456789" * 10)
        b = self._write("b", b"0123456789" * 10)
        self.assertTrue(content_equal(a, b, 7))

    def test_content_differs_in_last_chunk(self):
        a = self._write("a", b"x" * 100 + b"1")
        b = self._write("b", b"x" * 100 + b"2")
        self.assertFalse(content_equal(a, b, 16))

    def test_content_equal_empty(self):
        a = self._write("a", b"")
        b = self._write("b", b"")
        self.assertTrue(content_equal(a, b, 16))


class CompareTestBase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root_a = os.path.join(self._tmp.name, "a")
        self.root_b = os.path.join(self._tmp.name, "b")
        os.mkdir(self.root_a)
        os.mkdir(self.root_b)
        self.options = CompareOptions(quiet=True)

    def tearDown(self):
        self._tmp.cleanup()

    def compare(self, options=None):
        return compare_trees(self.root_a, self.root_b, options or self.options)


class TestCompareScenarios(CompareTestBase):
    def test_only_in_first(self):
        make_tree(self.root_a, {"f1.txt": b"12345"})
        records, count = self.compare()
        self.assertEqual(count, 1)
        self.assertEqual(
            summarize(records), [("f1.txt", DiffKind.ONLY_IN_FIRST, Location.FIRST)]
        )
        self.assertEqual(records[0].name, "f1.txt")
        self.assertEqual(records[0].type_a, EntryKind.FILE)
        self.assertEqual(records[0].file_type, "text/plain")

    def test_content_differs(self):
        make_tree(self.root_a, {"f1.txt": "abc"})
        make_tree(self.root_b, {"f1.txt": "abd"})
        records, count = self.compare()
        self.assertEqual(count, 1)
        self.assertEqual(
            summarize(records), [("f1.txt", DiffKind.CONTENT_DIFFERS, Location.BOTH)]
        )
        self.assertEqual((records[0].size_a, records[0].size_b), (3, 3))

    def test_size_differs_without_content_read(self):
        make_tree(self.root_a, {"f1.txt": "ab"})
        make_tree(self.root_b, {"f1.txt": "abcd"})
        with patch(
            "treecmp.compare.engine.content_equal", wraps=engine.content_equal
        ) as mock_equal:
            records, count = self.compare()
        mock_equal.assert_not_called()
        self.assertEqual(count, 1)
        self.assertEqual(records[0].kind, DiffKind.SIZE_DIFFERS)
        self.assertEqual((records[0].size_a, records[0].size_b), (2, 4))
        self.assertEqual(records[0].description(), "size differs (2 != 4)")

    def test_type_differs(self):
        make_tree(self.root_a, {"sub": None})
        make_tree(self.root_b, {"sub": "file"})
        records, count = self.compare()
        self.assertEqual(count, 1)
        self.assertEqual(
            summarize(records), [("sub", DiffKind.TYPE_DIFFERS, Location.BOTH)]
        )
        self.assertEqual(records[0].type_a, EntryKind.DIRECTORY)
        self.assertEqual(records[0].type_b, EntryKind.FILE)

    def test_empty_trees(self):
        records, count = self.compare()
        self.assertEqual(records, [])
        self.assertEqual(count, 0)

    def test_identical_files(self):
        make_tree(self.root_a, {"x.txt": "same"})
        make_tree(self.root_b, {"x.txt": "same"})
        with patch(
            "treecmp.compare.engine.content_equal", wraps=engine.content_equal
        ) as mock_equal:
            records, count = self.compare()
        mock_equal.assert_called_once()
        self.assertEqual(records, [])
        self.assertEqual(count, 0)


class TestCompareProperties(CompareTestBase):
    layout_a = {
        "common/same.txt": "same",
        "common/content.txt": "aaaa",
        "common/size.txt": "a",
        "common/nested/deep.bin": b"\x00\x01",
        "only_a.txt": "a",
        "only_a_dir/child.txt": "child",
        "typed": None,
        "z.txt": "z",
    }
    layout_b = {
        "common/same.txt": "same",
        "common/content.txt": "bbbb",
        "common/size.txt": "bbb",
        "common/nested/deep.bin": b"\x00\x01",
        "only_b.txt": "b",
        "typed": "file",
        "z.txt": "z",
    }

    def setUp(self):
        super().setUp()
        make_tree(self.root_a, self.layout_a)
        make_tree(self.root_b, self.layout_b)

    def test_expected_records(self):
        records, _count = self.compare()
        self.assertEqual(
            summarize(records),
            [
                ("common/content.txt", DiffKind.CONTENT_DIFFERS, Location.BOTH),
                ("common/size.txt", DiffKind.SIZE_DIFFERS, Location.BOTH),
                ("only_a.txt", DiffKind.ONLY_IN_FIRST, Location.FIRST),
                ("only_a_dir", DiffKind.ONLY_IN_FIRST, Location.FIRST),
                ("only_a_dir/child.txt", DiffKind.ONLY_IN_FIRST, Location.FIRST),
                ("only_b.txt", DiffKind.ONLY_IN_SECOND, Location.SECOND),
                ("typed", DiffKind.TYPE_DIFFERS, Location.BOTH),
            ],
        )

    def test_identity(self):
        records, count = compare_trees(self.root_a, self.root_a, self.options)
        self.assertEqual(records, [])
        self.assertEqual(count, 0)

    def test_symmetry(self):
        forward, _ = self.compare()
        backward, _ = compare_trees(self.root_b, self.root_a, self.options)

        swap = {
            DiffKind.ONLY_IN_FIRST: (DiffKind.ONLY_IN_SECOND, Location.SECOND),
            DiffKind.ONLY_IN_SECOND: (DiffKind.ONLY_IN_FIRST, Location.FIRST),
        }
        self.assertEqual(len(forward), len(backward))
        for fwd, bwd in zip(forward, backward):
            self.assertEqual(fwd.relative_path, bwd.relative_path)
            if fwd.kind in swap:
                self.assertEqual((bwd.kind, bwd.location), swap[fwd.kind])
            else:
                self.assertEqual((bwd.kind, bwd.location), (fwd.kind, fwd.location))
            if fwd.kind == DiffKind.SIZE_DIFFERS:
                self.assertEqual((bwd.size_a, bwd.size_b), (fwd.size_b, fwd.size_a))

    def test_ordering_and_count(self):
        records, count = self.compare()
        paths = [r.relative_path for r in records]
        self.assertEqual(paths, sorted(paths))
        self.assertEqual(len(set(paths)), len(paths))
        self.assertEqual(count, len(records))

    def test_union_completeness(self):
        records, _ = self.compare()
        reported = {r.relative_path for r in records}
        expected = {
            "common/content.txt",
            "common/size.txt",
            "only_a.txt",
            "only_a_dir",
            "only_a_dir/child.txt",
            "only_b.txt",
            "typed",
        }
        self.assertEqual(reported, expected)

    def test_concurrent_matches_sequential(self):
        sequential, seq_count = self.compare()
        concurrent, con_count = self.compare(CompareOptions(workers=4, quiet=True))
        self.assertEqual(concurrent, sequential)
        self.assertEqual(con_count, seq_count)

    def test_exclude_patterns(self):
        options = CompareOptions(
            exclude_patterns=("only_*", "common/size.txt"), quiet=True
        )
        records, _ = self.compare(options)
        self.assertEqual(
            [r.relative_path for r in records], ["common/content.txt", "typed"]
        )

    def test_compare_roots_results(self):
        comparer = TreeComparer(self.options)
        results = comparer.compare_roots(self.root_a, self.root_b)
        self.assertIsInstance(results, CompareResults)
        self.assertEqual(results.count, 7)
        self.assertEqual(results.unreadable, [])
        self.assertEqual(len(results.only_in_first), 3)
        self.assertEqual(len(results.only_in_second), 1)

    def test_compare_roots_not_a_directory(self):
        comparer = TreeComparer(self.options)
        with self.assertRaises(TreecmpArgumentError):
            comparer.compare_roots(self.root_a, os.path.join(self.root_b, "nope"))


class TestCompareSpecialEntries(CompareTestBase):
    def test_symlinks_not_followed(self):
        make_tree(self.root_a, {"target/x": "x", "link": ("link", "target")})
        make_tree(self.root_b, {"target/x": "x", "link": ("link", "elsewhere")})
        records, count = self.compare()
        # Both sides are symlinks: targets are not compared or descended.
        self.assertEqual(records, [])
        self.assertEqual(count, 0)

    def test_symlink_vs_file(self):
        make_tree(self.root_a, {"target": "x", "link": ("link", "target")})
        make_tree(self.root_b, {"target": "x", "link": "x"})
        records, _ = self.compare()
        self.assertEqual(
            summarize(records), [("link", DiffKind.TYPE_DIFFERS, Location.BOTH)]
        )
        self.assertEqual(records[0].type_a, EntryKind.SYMLINK)

    def test_dangling_symlink_only_in_first(self):
        make_tree(self.root_a, {"dangling": ("link", "missing")})
        records, _ = self.compare()
        self.assertEqual(
            summarize(records), [("dangling", DiffKind.ONLY_IN_FIRST, Location.FIRST)]
        )
        self.assertIsNone(records[0].file_type)

    def test_fifo(self):
        make_tree(self.root_a, {"pipe": ("fifo",), "other": ("fifo",)})
        make_tree(self.root_b, {"pipe": ("fifo",), "other": "file"})
        records, _ = self.compare()
        self.assertEqual(
            summarize(records), [("other", DiffKind.TYPE_DIFFERS, Location.BOTH)]
        )
        self.assertEqual(records[0].type_a, EntryKind.OTHER)

    @unittest.skipIf(have_root(), "root bypasses file permissions")
    def test_unreadable_file(self):
        make_tree(self.root_a, {"secret": "abc"})
        make_tree(self.root_b, {"secret": "abc"})
        secret = os.path.join(self.root_a, "secret")
        os.chmod(secret, 0)
        try:
            records, _ = self.compare()
        finally:
            os.chmod(secret, 0o644)
        self.assertEqual(
            summarize(records), [("secret", DiffKind.PERMISSION_ERROR, Location.BOTH)]
        )

    @unittest.skipIf(have_root(), "root bypasses directory permissions")
    def test_unreadable_subtree(self):
        make_tree(self.root_a, {"locked/hidden.txt": "a", "ok.txt": "a"})
        make_tree(self.root_b, {"locked": None, "ok.txt": "a"})
        locked = os.path.join(self.root_a, "locked")
        os.chmod(locked, 0)
        try:
            with self.assertLogs("treecmp.compare.treewalk", level="WARNING"):
                results = TreeComparer(self.options).compare_roots(
                    self.root_a, self.root_b
                )
        finally:
            os.chmod(locked, 0o755)
        self.assertEqual(results.count, 0)
        self.assertEqual(results.unreadable, [(Location.FIRST, "locked")])


class TestCompareEngine(CompareTestBase):
    def setUp(self):
        super().setUp()
        self.engine = CompareEngine()

    def test_classify_vanished(self):
        self.assertIsNone(
            self.engine.classify(self.root_a, self.root_b, "gone", self.options)
        )

    def test_classify_directories(self):
        make_tree(self.root_a, {"d": None})
        make_tree(self.root_b, {"d": None})
        self.assertIsNone(self.engine.classify(self.root_a, self.root_b, "d"))

    def test_lstat_permission_error(self):
        with patch(
            "treecmp.compare.engine._lstat", side_effect=PermissionError(13, "denied")
        ):
            rec = self.engine.classify(self.root_a, self.root_b, "x", self.options)
        self.assertEqual(rec.kind, DiffKind.PERMISSION_ERROR)
        self.assertEqual(rec.location, Location.BOTH)

    def test_lstat_os_error(self):
        with patch(
            "treecmp.compare.engine._lstat",
            side_effect=OSError(errno.EIO, "I/O error"),
        ):
            with self.assertRaises(TreecmpSystemError):
                self.engine.classify(self.root_a, self.root_b, "x", self.options)

    def test_content_read_permission_error(self):
        make_tree(self.root_a, {"f": "abc"})
        make_tree(self.root_b, {"f": "abd"})
        with patch(
            "treecmp.compare.engine.content_equal",
            side_effect=PermissionError(13, "denied"),
        ):
            rec = self.engine.classify(self.root_a, self.root_b, "f", self.options)
        self.assertEqual(rec.kind, DiffKind.PERMISSION_ERROR)

    def test_content_read_os_error(self):
        make_tree(self.root_a, {"f": "abc"})
        make_tree(self.root_b, {"f": "abd"})
        with patch(
            "treecmp.compare.engine.content_equal",
            side_effect=OSError(errno.EIO, "I/O error"),
        ):
            with self.assertRaises(TreecmpSystemError):
                self.engine.compute_diff(
                    self.root_a, self.root_b, ["f"], self.options
                )

    def test_content_vanished_during_read(self):
        make_tree(self.root_a, {"f": "abc"})
        make_tree(self.root_b, {"f": "abd"})

        def _vanish(path_a, _path_b, _chunk_size):
            os.unlink(path_a)
            raise FileNotFoundError(errno.ENOENT, "gone", path_a)

        with patch("treecmp.compare.engine.content_equal", side_effect=_vanish):
            rec = self.engine.classify(self.root_a, self.root_b, "f", self.options)
        self.assertEqual(rec.kind, DiffKind.ONLY_IN_SECOND)

    def test_classify_walked_entries_without_stat(self):
        make_tree(self.root_a, {"f": "abc", "g": "x"})
        make_tree(self.root_b, {"f": "abcd"})
        entries_f = (
            PathEntry("f", EntryKind.FILE, 3),
            PathEntry("f", EntryKind.FILE, 4),
        )
        entries_g = (PathEntry("g", EntryKind.FILE, 1), None)
        with patch("treecmp.compare.engine._lstat") as mock_lstat:
            rec_f = self.engine.classify(
                self.root_a, self.root_b, "f", self.options, entries_f
            )
            rec_g = self.engine.classify(
                self.root_a, self.root_b, "g", self.options, entries_g
            )
        mock_lstat.assert_not_called()
        self.assertEqual(
            (rec_f.kind, rec_f.size_a, rec_f.size_b), (DiffKind.SIZE_DIFFERS, 3, 4)
        )
        self.assertEqual(rec_g.kind, DiffKind.ONLY_IN_FIRST)

    def test_classify_walked_entry_not_examined(self):
        entries = (PathEntry("x", None), PathEntry("x", EntryKind.FILE, 1))
        rec = self.engine.classify(self.root_a, self.root_b, "x", self.options, entries)
        self.assertEqual(rec.kind, DiffKind.PERMISSION_ERROR)
        self.assertEqual(rec.location, Location.BOTH)

    def test_classify_walked_file_vanished_before_read(self):
        make_tree(self.root_b, {"f": "abc"})
        entries = (
            PathEntry("f", EntryKind.FILE, 3),
            PathEntry("f", EntryKind.FILE, 3),
        )
        rec = self.engine.classify(self.root_a, self.root_b, "f", self.options, entries)
        self.assertEqual(rec.kind, DiffKind.ONLY_IN_SECOND)

    def test_compare_roots_stats_each_path_once(self):
        make_tree(self.root_a, {"d/same": "abc", "d/content": "abc", "only": "a"})
        make_tree(self.root_b, {"d/same": "abc", "d/content": "abd", "extra": "ab"})
        with patch("treecmp.compare.engine._lstat", wraps=engine._lstat) as mock_lstat:
            results = TreeComparer(self.options).compare_roots(self.root_a, self.root_b)
        mock_lstat.assert_not_called()
        self.assertEqual(
            summarize(results),
            [
                ("d/content", DiffKind.CONTENT_DIFFERS, Location.BOTH),
                ("extra", DiffKind.ONLY_IN_SECOND, Location.SECOND),
                ("only", DiffKind.ONLY_IN_FIRST, Location.FIRST),
            ],
        )

    def test_concurrent_error_cancels_queued_paths(self):
        paths = [f"p{i:03d}" for i in range(100)]
        classified = []

        def _classify(_root_a, _root_b, path, _options, _entries):
            classified.append(path)
            if path == paths[0]:
                raise TreecmpSystemError("Error examining 'p000'")
            time.sleep(0.01)
            return None

        options = CompareOptions(quiet=True, workers=2)
        with patch.object(self.engine, "classify", side_effect=_classify):
            with self.assertRaises(TreecmpSystemError):
                self.engine.compute_diff(self.root_a, self.root_b, paths, options)
        self.assertLess(len(classified), len(paths))

    def test_compute_diff_empty(self):
        results = self.engine.compute_diff(self.root_a, self.root_b, [], self.options)
        self.assertEqual(len(results), 0)
        self.assertEqual(results.unreadable, [])

    def test_compute_diff_sorts_and_dedups(self):
        make_tree(self.root_a, {"b": "1", "a": "1"})
        results = self.engine.compute_diff(
            self.root_a, self.root_b, ["b", "a", "b"], self.options
        )
        self.assertEqual(results.paths(), ["a", "b"])
