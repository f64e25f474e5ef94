"""Tests for sonar_fix/vcs.py"""

import shutil
import subprocess

import pytest

from sonar_fix import vcs


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeGit:
    """Stands in for subprocess.run; maps git sub-commands to outputs or errors."""

    def __init__(self, outputs=None, fail=()):
        self.outputs = outputs or {}
        self.fail = set(fail)
        self.calls = []

    def __call__(self, args, cwd=None, **kwargs):
        self.calls.append((args, cwd))
        command = args[1]
        if command in self.fail:
            raise subprocess.CalledProcessError(128, args, stderr="fatal")
        return subprocess.CompletedProcess(args, 0, stdout=self.outputs.get(command, ""))


@pytest.fixture
def fake_git(monkeypatch):
    def install(**kwargs):
        git = FakeGit(**kwargs)
        monkeypatch.setattr(vcs.subprocess, "run", git)
        return git
    return install


def _missing_git(*args, **kwargs):
    raise FileNotFoundError("git")


# ---------------------------------------------------------------------------
# current_branch
# ---------------------------------------------------------------------------

def test_current_branch(fake_git, tmp_path):
    git = fake_git(outputs={"rev-parse": "feature/x\n"})
    assert vcs.current_branch(tmp_path) == "feature/x"
    assert git.calls[0] == (["git", "rev-parse", "--abbrev-ref", "HEAD"], str(tmp_path))


def test_current_branch_not_a_repo_falls_back_to_master(fake_git, tmp_path):
    fake_git(fail={"rev-parse"})
    assert vcs.current_branch(tmp_path) == "master"


def test_current_branch_git_missing_falls_back_to_master(monkeypatch, tmp_path):
    monkeypatch.setattr(vcs.subprocess, "run", _missing_git)
    assert vcs.current_branch(tmp_path) == "master"


def test_current_branch_empty_output_falls_back_to_master(fake_git, tmp_path):
    fake_git(outputs={"rev-parse": ""})
    assert vcs.current_branch(tmp_path) == "master"


# ---------------------------------------------------------------------------
# current_commit
# ---------------------------------------------------------------------------

def test_current_commit(fake_git, tmp_path):
    fake_git(outputs={"rev-parse": "a" * 40 + "\n"})
    assert vcs.current_commit(tmp_path) == "a" * 40


def test_current_commit_failure_returns_none_and_logs(fake_git, tmp_path, caplog):
    fake_git(fail={"rev-parse"})
    assert vcs.current_commit(tmp_path) is None
    assert "current commit" in caplog.text


# ---------------------------------------------------------------------------
# is_modified_since
# ---------------------------------------------------------------------------

def test_unmodified_file(fake_git, tmp_path):
    git = fake_git()
    assert vcs.is_modified_since(tmp_path, "src/a.ts", "abc") is False
    assert git.calls[0][0] == ["git", "diff", "--quiet", "abc", "--", "src/a.ts"]


def test_diff_failure_means_modified(fake_git, tmp_path):
    fake_git(fail={"diff"})
    assert vcs.is_modified_since(tmp_path, "src/a.ts", "bad-ref") is True


def test_git_missing_means_modified(monkeypatch, tmp_path):
    monkeypatch.setattr(vcs.subprocess, "run", _missing_git)
    assert vcs.is_modified_since(tmp_path, "src/a.ts", "abc") is True


def test_unknown_commit_means_modified(fake_git, tmp_path):
    git = fake_git()
    assert vcs.is_modified_since(tmp_path, "src/a.ts", None) is True
    assert git.calls == []


# ---------------------------------------------------------------------------
# repository_name
# ---------------------------------------------------------------------------

def test_repository_name(fake_git, tmp_path):
    fake_git(outputs={"rev-parse": "/home/dev/my-api\n"})
    assert vcs.repository_name(tmp_path) == "my-api"


def test_repository_name_outside_repo(fake_git, tmp_path):
    fake_git(fail={"rev-parse"})
    assert vcs.repository_name(tmp_path) is None


# ---------------------------------------------------------------------------
# Against a real repository
# ---------------------------------------------------------------------------

@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_real_repository(tmp_path):
    def git(*args):
        subprocess.run(["git", *args], cwd=tmp_path, check=True, capture_output=True)

    git("init", "-q")
    git("checkout", "-q", "-b", "develop")
    git("config", "user.email", "dev@example.com")
    git("config", "user.name", "Dev")
    git("config", "commit.gpgsign", "false")
    (tmp_path / "a.txt").write_text("one\n")
    git("add", "a.txt")
    git("commit", "-q", "-m", "first")

    commit = vcs.current_commit(tmp_path)
    assert vcs.current_branch(tmp_path) == "develop"
    assert commit is not None and len(commit) == 40
    assert vcs.is_modified_since(tmp_path, "a.txt", commit) is False

    (tmp_path / "a.txt").write_text("two\n")
    assert vcs.is_modified_since(tmp_path, "a.txt", commit) is True
    assert vcs.is_modified_since(tmp_path, "a.txt", "0" * 40) is True
