"""Tests for the concurrent bulk export."""

import threading
from unittest.mock import patch

import pytest

from conftest import init_repo, make_commit, make_record, read_note
from reviewnotes.errors import MetadataUnavailable
from reviewnotes.export import ExportProgress, WorkDistributor
from reviewnotes.export.distributor import WorkQueue
from reviewnotes.metadata import InMemoryMetadataStore, JsonMetadataStore
from reviewnotes.models import ChangeStatus, Settings
from reviewnotes.notes.committer import CommitStatus
from reviewnotes.repository import RepositoryManager


@pytest.fixture
def repos_dir(tmp_path):
    """Three repositories, one of them nested, with two commits each."""
    base = tmp_path / "repos"
    for project in ("p1", "p2", "team/p3"):
        repo = init_repo(base / project)
        make_commit(repo, f"Initial {project}", "README.md")
        make_commit(repo, f"Feature {project}", "feature.py")
        repo.close()
    return base


def history(base, project):
    repo = RepositoryManager(base).open_repository(project)
    try:
        return [c.hexsha for c in repo.iter_commits()]
    finally:
        repo.close()


@pytest.fixture
def records(repos_dir):
    result = []
    change_id = 1
    for project in ("p1", "p2", "team/p3"):
        for revision in history(repos_dir, project):
            result.append(make_record(revision, project=project, change_id=change_id))
            change_id += 1
    result.append(make_record("e" * 40, project="ghost", change_id=100))
    result.append(make_record("d" * 40, project="p1", change_id=101, status=ChangeStatus.ABANDONED))
    return result


def distributor_for(repos_dir, records, threads=2, progress=None):
    return WorkDistributor(
        RepositoryManager(repos_dir),
        lambda: InMemoryMetadataStore(records),
        settings=Settings(threads=threads, retry_backoff=0),
        progress=progress,
    )


def test_work_queue_hands_out_each_item_once():
    """Test that concurrent takers never share a work item."""
    queue = WorkQueue({f"p{n}": [] for n in range(200)})
    taken = []
    lock = threading.Lock()

    def drain():
        while True:
            item = queue.take()
            if item is None:
                return
            with lock:
                taken.append(item.project)

    threads = [threading.Thread(target=drain) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(taken) == sorted(f"p{n}" for n in range(200))
    assert len(queue) == 0


def test_cluster_groups_merged_records(repos_dir, records):
    """Test that only merged records are clustered, by project."""
    progress = ExportProgress()
    distributor = distributor_for(repos_dir, records, progress=progress)

    clusters = distributor.cluster(records)

    assert sorted(clusters) == ["ghost", "p1", "p2", "team/p3"]
    assert len(clusters["p1"]) == 2
    assert all(r.is_merged for rs in clusters.values() for r in rs)
    assert progress.completed == 1


def test_export_all_repositories(repos_dir, records):
    """Test a full export across several repositories."""
    progress = ExportProgress()
    result = distributor_for(repos_dir, records, progress=progress).run()

    assert result.error is None
    assert result.total_records == len(records)
    assert result.repositories == 4
    assert result.notes_written == 6
    assert progress.completed == progress.total == len(records)

    failed = {o.project for o in result.failed}
    assert failed == {"ghost"}
    assert result.without_records == []

    for project in ("p1", "p2", "team/p3"):
        repo = RepositoryManager(repos_dir).open_repository(project)
        try:
            for revision in history(repos_dir, project):
                assert f"Project: {project}" in read_note(repo, revision)
        finally:
            repo.close()


def test_export_again_is_unchanged(repos_dir, records):
    """Test that re-running the export leaves the notes refs alone."""
    distributor_for(repos_dir, records).run()
    result = distributor_for(repos_dir, records).run()

    statuses = {o.project: o.status for o in result.outcomes}
    assert statuses["p1"] == CommitStatus.UNCHANGED
    assert statuses["team/p3"] == CommitStatus.UNCHANGED
    assert result.by_status()["unchanged"] == 3
    assert result.by_status()["failed"] == 1


def test_single_thread_export(repos_dir, records):
    """Test that a non-positive thread count runs with one worker."""
    distributor = distributor_for(repos_dir, records, threads=0)

    assert distributor.threads == 1
    assert distributor.run().notes_written == 6


def test_export_without_work(repos_dir):
    """Test an export with no merged records."""
    progress = ExportProgress()
    result = distributor_for(repos_dir, [], progress=progress).run()

    assert result.repositories == 0
    assert result.notes_written == 0
    assert progress.active_workers == 0


def test_unreadable_metadata(repos_dir, tmp_path):
    """Test that an unreadable store aborts the export with an error."""
    distributor = WorkDistributor(
        RepositoryManager(repos_dir),
        lambda: JsonMetadataStore(tmp_path / "missing.json"),
    )

    result = distributor.run()

    assert result.error is not None
    assert result.repositories == 0


def test_cancelled_export_hands_out_nothing(repos_dir, records):
    """Test that no work items are taken once the export is cancelled."""
    distributor = distributor_for(repos_dir, records)
    distributor.cancel()

    result = distributor.run()

    assert result.cancelled
    assert result.repositories == 0


def test_crashing_repository_does_not_stop_worker(repos_dir, records):
    """Test that an unexpected error is confined to its repository."""
    distributor = distributor_for(repos_dir, records, threads=1)
    real_export = distributor.export

    def flaky_export(store, item):
        if item.project == "p2":
            raise RuntimeError("boom")
        return real_export(store, item)

    with patch.object(distributor, "export", side_effect=flaky_export):
        result = distributor.run()

    outcomes = {o.project: o for o in result.outcomes}
    assert outcomes["p2"].error == "boom"
    assert outcomes["p1"].status == CommitStatus.COMMITTED
    assert outcomes["team/p3"].status == CommitStatus.COMMITTED


def test_worker_store_failure(repos_dir, records):
    """Test that a worker without a store ends cleanly."""
    calls = []

    def factory():
        calls.append(1)
        if len(calls) > 1:
            raise MetadataUnavailable("gone")
        return InMemoryMetadataStore(records)

    distributor = WorkDistributor(RepositoryManager(repos_dir), factory, settings=Settings(threads=2))

    result = distributor.run()

    assert result.repositories == 0
    assert distributor.progress.active_workers == 0


def test_repositories_without_records_are_reported(repos_dir, records):
    """Test that repositories no merged change points at are listed."""
    idle = init_repo(repos_dir / "idle")
    make_commit(idle, "Unreviewed work", "work.txt")
    idle.close()

    result = distributor_for(repos_dir, records).run()

    assert result.without_records == ["idle"]
    assert "idle" not in {o.project for o in result.outcomes}


def test_interrupt_stops_handing_out_work(repos_dir, records):
    """Test that an interrupt cancels, waits for running workers and re-raises."""
    progress = ExportProgress()
    distributor = distributor_for(repos_dir, records, threads=1, progress=progress)
    real_export = distributor.export
    real_wait = progress.wait_for_completion
    started = threading.Event()
    release = threading.Event()
    waits = []

    def slow_export(store, item):
        started.set()
        release.wait(10)
        return real_export(store, item)

    def interrupted_wait(*args, **kwargs):
        waits.append(1)
        if len(waits) == 1:
            started.wait(10)
            raise KeyboardInterrupt
        release.set()
        real_wait(*args, **kwargs)

    with patch.object(distributor, "export", side_effect=slow_export) as export, \
            patch.object(progress, "wait_for_completion", side_effect=interrupted_wait):
        with pytest.raises(KeyboardInterrupt):
            distributor.run()

    assert distributor.cancelled
    assert len(waits) == 2
    assert export.call_count == 1
    assert progress.active_workers == 0
