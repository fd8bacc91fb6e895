"""Tests for the command-line interface."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import make_record, read_note
from reviewnotes.cli import app

runner = CliRunner()


@pytest.fixture
def base_dir(test_repo):
    return Path(test_repo.working_tree_dir).parent


@pytest.fixture
def metadata_file(tmp_path, test_repo):
    """A metadata file with one merged change for the tip of the test repository."""
    record = make_record(test_repo.head.commit.hexsha)
    path = tmp_path / "reviews.json"
    path.write_text(json.dumps([record.model_dump(mode="json")]), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch):
    monkeypatch.setenv("REVIEWNOTES_LOG_LEVEL", "WARNING")


def test_update_command(test_repo, branch, base_dir, metadata_file):
    """Test creating notes for one ref update."""
    c1 = test_repo.head.commit
    result = runner.invoke(
        app,
        [
            "update", "demo", branch, c1.parents[0].hexsha, c1.hexsha,
            "--repos", str(base_dir), "--metadata", str(metadata_file),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "committed" in result.output
    assert "Project: demo" in read_note(test_repo, c1.hexsha)


def test_update_unknown_project(base_dir, metadata_file):
    """Test that an update for a missing repository fails."""
    result = runner.invoke(
        app,
        [
            "update", "ghost", "refs/heads/master", "0" * 40, "a" * 40,
            "--repos", str(base_dir), "--metadata", str(metadata_file),
        ],
    )

    assert result.exit_code == 1


def test_update_tag_push_is_ignored(test_repo, base_dir, metadata_file):
    """Test that a tag push succeeds without writing notes."""
    c1 = test_repo.head.commit
    result = runner.invoke(
        app,
        [
            "update", "demo", "refs/tags/v1", "0" * 40, c1.hexsha,
            "--repos", str(base_dir), "--metadata", str(metadata_file),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "no_op" in result.output
    assert "refs/notes/review" not in [ref.path for ref in test_repo.references]


def test_update_branch_deletion_is_ignored(test_repo, branch, base_dir, metadata_file):
    """Test that deleting a branch succeeds without writing notes."""
    result = runner.invoke(
        app,
        [
            "update", "demo", branch, test_repo.head.commit.hexsha, "0" * 40,
            "--repos", str(base_dir), "--metadata", str(metadata_file),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "no_op" in result.output


def test_invalid_settings(base_dir, metadata_file, monkeypatch):
    """Test that a bad timezone is reported before any work is done."""
    monkeypatch.setenv("REVIEWNOTES_TIMEZONE", "Nowhere/Zone")

    result = runner.invoke(app, ["export", "--repos", str(base_dir), "--metadata", str(metadata_file)])

    assert result.exit_code == 1
    assert "Invalid settings" in result.output


def test_post_receive_command(test_repo, branch, base_dir, metadata_file):
    """Test reading ref updates the way a post-receive hook receives them."""
    c1 = test_repo.head.commit
    stdin = f"{c1.parents[0].hexsha} {c1.hexsha} {branch}\nnot a ref update\n"

    result = runner.invoke(
        app,
        ["post-receive", "demo", "--repos", str(base_dir), "--metadata", str(metadata_file)],
        input=stdin,
    )

    assert result.exit_code == 0, result.output
    assert "Processed 1 ref updates" in result.output
    assert "Branch: master" in read_note(test_repo, c1.hexsha)


def test_export_command(test_repo, base_dir, metadata_file):
    """Test the bulk export with a summary table."""
    result = runner.invoke(
        app,
        ["export", "--repos", str(base_dir), "--metadata", str(metadata_file), "--threads", "1"],
    )

    assert result.exit_code == 0, result.output
    assert "demo" in result.output
    assert "1 notes in 1 repositories" in result.output
    assert "Submitted-by" in read_note(test_repo, test_repo.head.commit.hexsha)


def test_export_missing_metadata(base_dir, tmp_path):
    """Test that an unreadable metadata file fails the export."""
    result = runner.invoke(
        app,
        ["export", "--repos", str(base_dir), "--metadata", str(tmp_path / "missing.json")],
    )

    assert result.exit_code == 1
    assert "Error" in result.output


def test_show_command(test_repo, branch, base_dir, metadata_file):
    """Test showing a note after it was created."""
    c1 = test_repo.head.commit
    runner.invoke(
        app,
        [
            "update", "demo", branch, c1.parents[0].hexsha, c1.hexsha,
            "--repos", str(base_dir), "--metadata", str(metadata_file),
        ],
    )

    result = runner.invoke(app, ["show", "demo", c1.hexsha, "--repos", str(base_dir)])

    assert result.exit_code == 0, result.output
    assert "Code-Review+2: Jane Doe <jane@example.com>" in result.output


def test_show_without_note(test_repo, base_dir):
    """Test showing a commit that has no note."""
    result = runner.invoke(app, ["show", "demo", test_repo.head.commit.hexsha, "--repos", str(base_dir)])

    assert result.exit_code == 1
    assert "No review note" in result.output


def test_version_command():
    """Test the version command."""
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "reviewnotes" in result.output
