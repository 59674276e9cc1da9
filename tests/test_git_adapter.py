import subprocess

import pytest

from untangle.domain import DiffFile, DiffHunk
from untangle.errors import GitError
from untangle.git_adapter import (
    EMPTY_TREE,
    GitDiffResult,
    _run_git,
    get_diff_for_commit,
    materialize,
)


def test_run_git_includes_stderr_details_on_failure(monkeypatch):
    def fake_run(*args, **kwargs):
        return subprocess.CompletedProcess(
            args=["git", "status"],
            returncode=128,
            stdout=b"",
            stderr=b"fatal: not a git repository\n",
        )

    monkeypatch.setattr("untangle.git_adapter.subprocess.run", fake_run)

    with pytest.raises(GitError) as excinfo:
        _run_git(["status"])
    message = str(excinfo.value)
    assert "git status" in message
    assert "fatal: not a git repository" in message


def test_root_commit_is_diffed_against_empty_tree(monkeypatch):
    calls = []

    class FakeCompleted:
        def __init__(self, stdout: str):
            self.stdout = stdout

    def fake_run_git(args, cwd=None):
        calls.append(args)
        if args == ["rev-parse", "HEAD"]:
            return FakeCompleted("abc123\n")
        if args == ["rev-parse", "abc123^"]:
            raise GitError("no parent")
        return FakeCompleted("diff output")

    monkeypatch.setattr("untangle.git_adapter._run_git", fake_run_git)

    result = get_diff_for_commit("HEAD")
    assert result.base_commit is None
    assert result.target_commit == "abc123"
    assert result.raw_diff == "diff output"
    assert calls[-1] == ["diff", "--unified=0", "--find-renames", EMPTY_TREE, "abc123"]


def test_materialize_lays_out_base_and_current(monkeypatch, tmp_path):
    contents = {
        ("base1", "src/A.java"): b"class A {}\n",
        ("head1", "src/B.java"): b"class B {}\n",
    }
    monkeypatch.setattr(
        "untangle.git_adapter.read_file_at",
        lambda revision, path, cwd=None: contents[(revision, path)],
    )
    renamed = DiffFile(
        index=0,
        base_relative_path="src/A.java",
        current_relative_path="src/B.java",
        hunks=[DiffHunk(0, 1, 1, 1, 1, ["class A {}"], ["class B {}"])],
    )

    materialize([renamed], GitDiffResult("", "base1", "head1"), tmp_path)

    assert (tmp_path / "base" / "src" / "A.java").read_text() == "class A {}\n"
    assert (tmp_path / "current" / "src" / "B.java").read_text() == "class B {}\n"
    assert not (tmp_path / "current" / "src" / "A.java").exists()


def test_materialize_reads_working_tree_from_disk(tmp_path):
    repo = tmp_path / "repo"
    (repo / "pkg").mkdir(parents=True)
    (repo / "pkg" / "New.java").write_text("class New {}\n")
    added = DiffFile(0, None, "pkg/New.java", [])
    out = tmp_path / "out"

    materialize([added], GitDiffResult("", "base1", None), out, cwd=str(repo))

    assert (out / "current" / "pkg" / "New.java").read_text() == "class New {}\n"
    assert not (out / "base").exists()


def test_run_git_replaces_undecodable_output(monkeypatch):
    def fake_run(*args, **kwargs):
        return subprocess.CompletedProcess(
            args=["git", "diff"],
            returncode=0,
            stdout=b'+    String s = "caf\xe9";\n',
            stderr=b"",
        )

    monkeypatch.setattr("untangle.git_adapter.subprocess.run", fake_run)

    assert _run_git(["diff"]).stdout == '+    String s = "caf\ufffd";\n'
    assert _run_git(["show", "HEAD:A.java"], binary=True).stdout == b'+    String s = "caf\xe9";\n'


def test_materialize_keeps_working_tree_bytes(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    latin = 'class L { String s = "caf\xe9"; }\n'.encode("latin-1")
    (repo / "L.java").write_bytes(latin)
    out = tmp_path / "out"

    materialize([DiffFile(0, None, "L.java", [])], GitDiffResult("", "base1", None), out, cwd=str(repo))

    assert (out / "current" / "L.java").read_bytes() == latin
