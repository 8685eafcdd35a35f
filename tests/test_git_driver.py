"""
Tests for the git mirror driver.

Most tests mock subprocess.run; the integration class at the end mirrors
a real local repository and is skipped when git is not installed.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

import pytest

from repomirror.errors import MirrorOpFailed
from repomirror.mirror.git_driver import GitMirrorDriver


def _mock_git_result(returncode: int = 0, stdout: str = "", stderr: str = ""):
    """Create a mock subprocess.CompletedProcess."""
    return subprocess.CompletedProcess(
        args=["git"], returncode=returncode, stdout=stdout, stderr=stderr,
    )


STAMP = datetime(2020, 5, 17, 8, 30, 0, tzinfo=timezone.utc)


class TestClone:

    @mock.patch("repomirror.mirror.git_driver.subprocess.run")
    def test_runs_clone_mirror(self, mock_run, tmp_path):
        mock_run.return_value = _mock_git_result()
        dest = tmp_path / "repos" / "foo.git"

        GitMirrorDriver().clone_mirror("https://github.com/octocat/foo.git", dest)

        cmd = mock_run.call_args[0][0]
        assert cmd == ["git", "clone", "--mirror", "--quiet", "https://github.com/octocat/foo.git", str(dest)]
        assert mock_run.call_args[1]["env"]["GIT_TERMINAL_PROMPT"] == "0"
        assert dest.parent.is_dir()

    @mock.patch("repomirror.mirror.git_driver.subprocess.run")
    def test_failure_raises_and_cleans_up(self, mock_run, tmp_path):
        dest = tmp_path / "foo.git"

        def half_clone(cmd, **kwargs):
            dest.mkdir()
            (dest / "HEAD").write_text("ref: refs/heads/main\n")
            return _mock_git_result(returncode=128, stderr="fatal: repository not found")

        mock_run.side_effect = half_clone

        with pytest.raises(MirrorOpFailed) as exc:
            GitMirrorDriver().clone_mirror("https://github.com/octocat/foo.git", dest)

        assert "repository not found" in str(exc.value)
        assert exc.value.operation == "clone"
        assert not dest.exists()

    def test_existing_destination_refused(self, tmp_path):
        dest = tmp_path / "foo.git"
        dest.mkdir()
        keep = dest / "keep"
        keep.write_text("x")

        with pytest.raises(MirrorOpFailed, match="already exists"):
            GitMirrorDriver().clone_mirror("https://github.com/octocat/foo.git", dest)

        assert keep.exists()

    @mock.patch("repomirror.mirror.git_driver.subprocess.run")
    def test_timeout_is_a_failure(self, mock_run, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=5)

        with pytest.raises(MirrorOpFailed, match="timed out"):
            GitMirrorDriver(timeout=5).clone_mirror("https://x/y.git", tmp_path / "y.git")

    @mock.patch("repomirror.mirror.git_driver.subprocess.run")
    def test_missing_git_is_a_failure(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError("git")

        with pytest.raises(MirrorOpFailed, match="could not run git"):
            GitMirrorDriver().clone_mirror("https://x/y.git", tmp_path / "y.git")


class TestFetchAndHead:

    @mock.patch("repomirror.mirror.git_driver.subprocess.run")
    def test_fetch_runs_remote_update(self, mock_run, tmp_path):
        mock_run.return_value = _mock_git_result()

        GitMirrorDriver().fetch_updates(tmp_path)

        assert mock_run.call_args[0][0] == ["git", "remote", "update", "--prune"]
        assert mock_run.call_args[1]["cwd"] == str(tmp_path)

    @mock.patch("repomirror.mirror.git_driver.subprocess.run")
    def test_fetch_failure(self, mock_run, tmp_path):
        mock_run.return_value = _mock_git_result(returncode=1, stderr="error: could not fetch origin")

        with pytest.raises(MirrorOpFailed, match="could not fetch origin"):
            GitMirrorDriver().fetch_updates(tmp_path)

    def test_fetch_missing_directory(self, tmp_path):
        with pytest.raises(MirrorOpFailed, match="missing"):
            GitMirrorDriver().fetch_updates(tmp_path / "gone.git")

    @mock.patch("repomirror.mirror.git_driver.subprocess.run")
    def test_set_default_branch(self, mock_run, tmp_path):
        mock_run.return_value = _mock_git_result()

        GitMirrorDriver().set_default_branch(tmp_path, "trunk")

        assert mock_run.call_args[0][0] == ["git", "symbolic-ref", "HEAD", "refs/heads/trunk"]


class TestMetadataFiles:

    def test_description_written_with_newline(self, tmp_path):
        GitMirrorDriver().set_description(tmp_path, "A tiny tool")
        assert (tmp_path / "description").read_text() == "A tiny tool\n"

    def test_empty_description_truncates(self, tmp_path):
        (tmp_path / "description").write_text("Unnamed repository; edit this file\n")
        GitMirrorDriver().set_description(tmp_path, "")
        assert (tmp_path / "description").read_text() == ""

    def test_description_into_missing_dir_fails(self, tmp_path):
        with pytest.raises(MirrorOpFailed):
            GitMirrorDriver().set_description(tmp_path / "nope", "x")

    def test_host_config_copied(self, tmp_path):
        template = tmp_path / "base-cgitrc"
        template.write_text("enable-html-serving=1\n")
        dest = tmp_path / "foo.git"
        dest.mkdir()

        GitMirrorDriver().write_host_config(dest, template)

        assert (dest / "cgitrc").read_text() == "enable-html-serving=1\n"

    def test_host_config_missing_template(self, tmp_path):
        with pytest.raises(MirrorOpFailed, match="unable to copy"):
            GitMirrorDriver().write_host_config(tmp_path, tmp_path / "missing")


class TestModificationTime:

    def test_stamps_directory_without_refs(self, tmp_path):
        """A repository with no commits has no refs; the directory is still stamped."""
        GitMirrorDriver().set_modification_time(tmp_path, STAMP, branch="main")
        assert os.stat(tmp_path).st_mtime == STAMP.timestamp()

    def test_stamps_loose_ref(self, tmp_path):
        ref = tmp_path / "refs" / "heads" / "main"
        ref.parent.mkdir(parents=True)
        ref.write_text("0" * 40 + "\n")

        GitMirrorDriver().set_modification_time(tmp_path, STAMP, branch="main")

        assert os.stat(ref).st_mtime == STAMP.timestamp()
        assert os.stat(tmp_path).st_mtime == STAMP.timestamp()

    def test_falls_back_to_packed_refs(self, tmp_path):
        packed = tmp_path / "packed-refs"
        packed.write_text("# pack-refs with: peeled fully-peeled sorted\n")

        GitMirrorDriver().set_modification_time(tmp_path, STAMP, branch="main")

        assert os.stat(packed).st_mtime == STAMP.timestamp()

    def test_missing_directory_fails(self, tmp_path):
        with pytest.raises(MirrorOpFailed):
            GitMirrorDriver().set_modification_time(tmp_path / "gone", STAMP)


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=str(cwd), check=True, capture_output=True, text=True,
    )


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestAgainstRealGit:

    @pytest.fixture
    def upstream(self, tmp_path):
        repo = tmp_path / "upstream"
        repo.mkdir()
        _git(repo, "init", "--quiet")
        _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
        (repo / "README").write_text("hello\n")
        _git(repo, "add", "README")
        _git(repo, "commit", "--quiet", "-m", "first")
        _git(repo, "branch", "develop")
        return repo

    def test_clone_fetch_and_metadata(self, upstream, tmp_path):
        driver = GitMirrorDriver(timeout=60)
        dest = tmp_path / "mirrors" / "upstream.git"

        driver.clone_mirror(str(upstream), dest)
        assert (dest / "HEAD").exists()
        assert not (dest / "README").exists()  # bare

        driver.set_default_branch(dest, "develop")
        assert (dest / "HEAD").read_text().strip() == "ref: refs/heads/develop"

        (upstream / "README").write_text("changed\n")
        _git(upstream, "commit", "--quiet", "-am", "second")
        _git(upstream, "branch", "feature")
        driver.fetch_updates(dest)

        refs = subprocess.run(
            ["git", "for-each-ref", "--format=%(refname)"],
            cwd=str(dest), capture_output=True, text=True, check=True,
        ).stdout.split()
        assert "refs/heads/feature" in refs

        driver.set_description(dest, "Mirror of upstream")
        driver.set_modification_time(dest, STAMP, branch="main")
        assert (dest / "description").read_text() == "Mirror of upstream\n"
        assert os.stat(dest).st_mtime == STAMP.timestamp()
