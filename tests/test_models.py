import pytest

from codemate.models import (
    DiffInfo, FileData, UndoEntry, calculate_impact_score, can_undo, is_hub_file, revert_lines,
)
from codemate.schema import ProjectKeys, generate_project_name, session_undo_key


@pytest.mark.parametrize(
    "dependents, total, expected",
    [
        (0, 10, 0),
        (3, 0, 0),
        (3, 1, 0),
        (5, 10, 56),
        (9, 10, 100),
        (20, 10, 100),
        (1, 3, 50),
        (1, 2, 100),
        (50, 100, 51),
    ],
)
def test_impact_score(dependents, total, expected):
    assert calculate_impact_score(dependents, total) == expected


def test_hub_threshold_is_strict():
    assert not is_hub_file(5)
    assert is_hub_file(6)


def test_file_data_identity_is_the_hash():
    a = FileData(lines=["x"], hash="abc", size=1, last_modified=1)
    b = FileData(lines=["y"], hash="abc", size=9, last_modified=2)
    c = FileData(lines=["x"], hash="def", size=1, last_modified=1)
    assert a == b
    assert a != c


class TestUndo:
    def test_edit_range_still_intact(self):
        diff = DiffInfo(file_path="a.py", old_lines=["b"], new_lines=["B", "B2"], start_line=2)
        entry = UndoEntry.from_diff(diff, "edit_lines: a.py")
        current = ["a", "B", "B2", "c"]

        assert not entry.is_creation
        assert can_undo(entry, current)
        assert revert_lines(entry, current) == ["a", "b", "c"]

    def test_edit_range_changed_since(self):
        entry = UndoEntry.from_diff(
            DiffInfo(file_path="a.py", old_lines=["b"], new_lines=["B", "B2"], start_line=2), "edit"
        )
        assert not can_undo(entry, ["a", "X", "B2", "c"])

    def test_lines_outside_the_range_do_not_block(self):
        entry = UndoEntry.from_diff(
            DiffInfo(file_path="a.py", old_lines=["b"], new_lines=["B"], start_line=2), "edit"
        )
        current = ["changed", "B", "also changed"]
        assert can_undo(entry, current)
        assert revert_lines(entry, current) == ["changed", "b", "also changed"]

    def test_creation(self):
        entry = UndoEntry.from_diff(DiffInfo(file_path="new.py", old_lines=[], new_lines=["x"], start_line=1), "create")
        assert entry.is_creation
        assert can_undo(entry, ["x"])
        assert not can_undo(entry, ["y"])

    def test_deletion_restores_everything(self):
        entry = UndoEntry.from_diff(DiffInfo(file_path="gone.py", old_lines=["a", "b"], new_lines=[], start_line=1), "delete")
        assert can_undo(entry, [])
        assert revert_lines(entry, []) == ["a", "b"]

    def test_serialization_keeps_start_line(self):
        entry = UndoEntry.from_diff(
            DiffInfo(file_path="a.py", old_lines=["b"], new_lines=["c"], start_line=7), "edit", tool_call_id="call_3"
        )
        restored = UndoEntry.from_dict(entry.to_dict())
        assert restored.start_line == 7
        assert restored.tool_call_id == "call_3"


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/home/user/projects/myapp", "projects-myapp"),
        ("/myapp", "myapp"),
        ("/", "root"),
        ("", "root"),
        ("C:\\Work\\My App", "work-my-app"),
    ],
)
def test_project_name(path, expected):
    assert generate_project_name(path) == expected


def test_key_layout():
    keys = ProjectKeys.for_project("myapp")
    assert keys.files == "project:myapp:files"
    assert keys.indexes == "project:myapp:indexes"
    assert session_undo_key("s1") == "session:s1:undo"
