"""Tests for process tree resolution."""

import os

import pytest

from procscope.errors import ProcessNotFoundError
from procscope.tree import (
    ProcessTreeResolver,
    ProcfsParentLookup,
    PsutilParentLookup,
    children_of,
    default_parent_lookup,
    descendants_of,
)

# pid -> parent pid; 40's parent 999 no longer exists
TABLE = {
    1: 0,
    10: 1,
    11: 10,
    12: 10,
    13: 11,
    14: 13,
    20: 1,
    40: 999,
}


class StaticLookup:
    """Parent lookup returning a fixed table and counting reads."""

    def __init__(self, table: dict[int, int]) -> None:
        self.table = table
        self.calls = 0

    def parent_table(self) -> dict[int, int]:
        self.calls += 1
        return dict(self.table)


class TestChildrenOf:
    """Tests for the pure children/descendants helpers."""

    @pytest.mark.parametrize("pid", sorted(TABLE) + [999])
    def test_children_match_parent_ids(self, pid):
        """Test children are exactly the pids whose parent is pid."""
        expected = {child for child, parent in TABLE.items() if parent == pid}
        assert set(children_of(pid, TABLE)) == expected

    def test_descendants_are_transitive(self):
        """Test the descendant closure walks every level."""
        assert descendants_of(10, TABLE) == [11, 12, 13, 14]

    def test_descendants_exclude_root(self):
        """Test the root pid itself is not a descendant."""
        assert 1 not in descendants_of(1, TABLE)

    def test_descendants_of_leaf_is_empty(self):
        """Test a leaf process has no descendants."""
        assert descendants_of(14, TABLE) == []

    def test_descendants_terminate_on_cycle(self):
        """Test a cyclic table (pid reuse) does not loop forever."""
        table = {2: 3, 3: 2, 4: 3}
        assert sorted(descendants_of(2, table)) == [3, 4]

    def test_self_parent_is_not_a_child(self):
        """Test a process listed as its own parent is not its own child."""
        assert children_of(0, {0: 0, 4: 0}) == [4]


class TestProcessTreeResolver:
    """Tests for ProcessTreeResolver."""

    def test_resolve_parent_and_children(self):
        """Test resolve returns the recorded parent and direct children."""
        resolver = ProcessTreeResolver(StaticLookup(TABLE))

        links = resolver.resolve(10)

        assert links.parent_id == 1
        assert links.children == [11, 12]

    def test_resolve_dangling_parent(self):
        """Test a parent id with no live process is still reported."""
        resolver = ProcessTreeResolver(StaticLookup(TABLE))

        assert resolver.parent_id(40) == 999

    def test_resolve_missing_pid_raises(self):
        """Test resolving a pid absent from the table raises ProcessNotFoundError."""
        resolver = ProcessTreeResolver(StaticLookup(TABLE))

        with pytest.raises(ProcessNotFoundError):
            resolver.resolve(12345)

    def test_children_recursive(self):
        """Test recursive children give the descendant closure."""
        resolver = ProcessTreeResolver(StaticLookup(TABLE))

        assert resolver.children(10) == [11, 12]
        assert resolver.children(10, recursive=True) == [11, 12, 13, 14]

    def test_table_is_reread_every_call(self):
        """Test nothing is cached between calls."""
        lookup = StaticLookup(TABLE)
        resolver = ProcessTreeResolver(lookup)

        resolver.resolve(10)
        lookup.table = {**TABLE, 15: 10}
        links = resolver.resolve(10)

        assert lookup.calls == 2
        assert links.children == [11, 12, 15]


class TestParentLookups:
    """Tests for the per-OS parent lookups."""

    def test_psutil_lookup_sees_current_process(self):
        """Test the psutil sweep records this process and its parent."""
        table = PsutilParentLookup().parent_table()
        assert table[os.getpid()] == os.getppid()

    def test_procfs_lookup_reads_status_files(self, tmp_path):
        """Test the procfs lookup parses PPid lines and skips junk entries."""
        for pid, ppid in ((1, 0), (7, 1), (8, 7)):
            (tmp_path / str(pid)).mkdir()
            (tmp_path / str(pid) / "status").write_text(
                f"Name:\tproc{pid}\nState:\tS (sleeping)\nPPid:\t{ppid}\n"
            )
        (tmp_path / "self").mkdir()
        (tmp_path / "9").mkdir()  # exited: no status file

        table = ProcfsParentLookup(tmp_path).parent_table()

        assert table == {1: 0, 7: 1, 8: 7}

    def test_procfs_lookup_missing_root(self, tmp_path):
        """Test an unreadable proc root gives an empty table."""
        assert ProcfsParentLookup(tmp_path / "missing").parent_table() == {}

    def test_default_lookup_sees_current_process(self):
        """Test the platform default lookup finds this process."""
        table = default_parent_lookup().parent_table()
        assert table[os.getpid()] == os.getppid()
