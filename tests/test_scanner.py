import pytest

from codemate.errors import FileOperationError
from codemate.path_utils import GitIgnore, PathValidator, should_skip_path
from codemate.scanner import FileScanner, read_text_file


@pytest.fixture
def tree(tmp_path):
    files = {
        "src/app.py": "print('hi')\n",
        "src/util.ts": "export const x = 1;\n",
        "src/notes.txt": "not indexed\n",
        "node_modules/lib/index.js": "module.exports = 1;\n",
        ".hidden/secret.py": "x = 1\n",
        "generated/out.py": "x = 2\n",
        "logs/debug.py": "x = 3\n",
        "config.yaml": "name: demo\n",
    }
    for rel, content in files.items():
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    (tmp_path / ".gitignore").write_text("generated/\n# comment\n*.log\n", encoding="utf-8")
    (tmp_path / "logs" / ".gitignore").write_text("debug.py\n", encoding="utf-8")
    return tmp_path


def test_scan_respects_ignores(tree):
    paths = [r.path for r in FileScanner().scan(tree)]
    assert paths == ["config.yaml", "src/app.py", "src/util.ts"]


def test_extension_allow_list(tree):
    paths = [r.path for r in FileScanner(extensions=[".py"]).scan(tree)]
    assert paths == ["src/app.py"]


def test_extra_ignore_and_size_limit(tree):
    (tree / "src" / "big.py").write_text("x = 1\n" * 100, encoding="utf-8")
    paths = [r.path for r in FileScanner(extra_ignore=["src"]).scan(tree)]
    assert paths == ["config.yaml"]

    paths = [r.path for r in FileScanner(max_file_size=50).scan(tree)]
    assert "src/big.py" not in paths
    assert "src/app.py" in paths


def test_progress_callback_failure_does_not_stop_scan(tree):
    seen = []

    def on_progress(current, total, path):
        seen.append((current, total, path))
        raise RuntimeError("boom")

    results = FileScanner(on_progress=on_progress).scan_all(tree)
    assert len(results) == 3
    assert [s[2] for s in seen] == [r.path for r in results]
    assert all(total == 3 for _, total, _ in seen)


def test_scan_is_lazy(tree):
    scanner = FileScanner()
    iterator = scanner.scan(tree)
    first = next(iterator)
    assert first.path == "config.yaml"
    assert first.type == "file"
    iterator.close()


def test_symlinks_are_reported(tree):
    (tree / "src" / "alias.py").symlink_to(tree / "src" / "app.py")
    results = {r.path: r for r in FileScanner().scan(tree)}
    assert results["src/alias.py"].type == "symlink"
    assert results["src/alias.py"].symlink_target.endswith("app.py")


def test_binary_content_is_not_text(tmp_path):
    blob = tmp_path / "data.py"
    blob.write_bytes(b"x = 1\x00\x01")
    assert read_text_file(blob) is None

    text = tmp_path / "ok.py"
    text.write_text("x = 1\n", encoding="utf-8")
    assert read_text_file(text) == "x = 1\n"


class TestGitIgnore:
    def test_patterns(self):
        ignore = GitIgnore()
        ignore.add_rules(["*.log", "build/", "/top.py", "!keep.log", "docs/**/*.tmp"])

        assert ignore.is_ignored("debug.log")
        assert ignore.is_ignored("nested/debug.log")
        assert not ignore.is_ignored("keep.log")
        assert ignore.is_ignored("build", is_dir=True)
        assert not ignore.is_ignored("build")
        assert ignore.is_ignored("top.py")
        assert not ignore.is_ignored("sub/top.py")
        assert ignore.is_ignored("docs/a/b/x.tmp")

    def test_nested_rules_are_scoped(self):
        ignore = GitIgnore()
        ignore.add_rules(["*.py"], base="vendor")
        assert ignore.is_ignored("vendor/x.py")
        assert not ignore.is_ignored("x.py")


def test_hidden_and_ignored_dirs(tmp_path):
    assert should_skip_path(tmp_path / "node_modules", tmp_path)
    assert should_skip_path(tmp_path / ".env", tmp_path)
    assert should_skip_path(tmp_path / ".git" / "config", tmp_path)
    assert not should_skip_path(tmp_path / "src" / "a.py", tmp_path)


class TestPathValidator:
    def test_inside(self, tmp_path):
        absolute, rel = PathValidator(tmp_path).resolve("./src/a.py")
        assert rel == "src/a.py"
        assert absolute == tmp_path.resolve() / "src" / "a.py"

    def test_root_itself(self, tmp_path):
        assert PathValidator(tmp_path).resolve(".")[1] == ""

    @pytest.mark.parametrize("bad", ["../etc/passwd", "src/../../x", "~/secrets", "", "   "])
    def test_rejected(self, tmp_path, bad):
        with pytest.raises(FileOperationError):
            PathValidator(tmp_path).resolve(bad)

    def test_absolute_outside(self, tmp_path):
        assert not PathValidator(tmp_path / "project").is_within_project("/etc/passwd")
