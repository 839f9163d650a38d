from datetime import timedelta

from m3u8_cli.models.job import (
    Job,
    JobOutcome,
    JobProgress,
    JobStatus,
    QueueSnapshot,
)


def make_job(**kwargs) -> Job:
    defaults = {
        "source_uri": "https://example.com/a.m3u8",
        "destination_name": "clip_1",
        "sequence": 1,
    }
    defaults.update(kwargs)
    return Job(**defaults)


class TestJobProgress:
    def test_clamps_percent(self):
        progress = JobProgress().advanced(150, timedelta(0), timedelta(0))
        assert progress.percent == 100
        assert JobProgress().advanced(-5, timedelta(0), timedelta(0)).percent == 0

    def test_never_goes_backwards(self):
        progress = JobProgress().advanced(40, timedelta(seconds=4), timedelta(seconds=10))
        progress = progress.advanced(20, timedelta(seconds=2), timedelta(seconds=10))
        assert progress.percent == 40
        assert progress.elapsed == timedelta(seconds=4)

    def test_keeps_known_total_when_update_has_none(self):
        progress = JobProgress().advanced(10, timedelta(seconds=1), timedelta(seconds=10))
        progress = progress.advanced(20, timedelta(seconds=2), timedelta(0))
        assert progress.total_length == timedelta(seconds=10)


class TestJob:
    def test_new_job_is_pending(self):
        job = make_job()
        assert job.status is JobStatus.PENDING
        assert job.progress == JobProgress()
        assert job.view().time_taken is None

    def test_progress_ignored_unless_in_progress(self):
        job = make_job()
        job.update_progress(50, timedelta(seconds=5), timedelta(seconds=10))
        assert job.progress.percent == 0

        job.mark_in_progress()
        job.update_progress(50, timedelta(seconds=5), timedelta(seconds=10))
        assert job.progress.percent == 50

    def test_outcome_is_applied_once(self):
        job = make_job()
        job.mark_in_progress()
        job.apply_outcome(JobOutcome.failed("boom"))
        job.apply_outcome(JobOutcome.completed())
        assert job.status is JobStatus.FAILED
        assert job.error_message == "boom"

    def test_error_message_only_for_failures(self):
        job = make_job()
        job.mark_in_progress()
        job.apply_outcome(JobOutcome.cancelled())
        assert job.status is JobStatus.CANCELLED
        assert job.error_message is None

    def test_progress_frozen_after_terminal(self):
        job = make_job()
        job.mark_in_progress()
        job.apply_outcome(JobOutcome.completed())
        job.update_progress(90, timedelta(seconds=9), timedelta(seconds=10))
        assert job.progress.percent == 0

    def test_view_reports_time_taken(self):
        job = make_job()
        job.mark_in_progress()
        job.apply_outcome(JobOutcome.completed())
        view = job.view()
        assert view.time_taken is not None
        assert view.time_taken >= timedelta(0)
        assert view.destination_name == "clip_1"

    def test_failed_outcome_without_message(self):
        assert JobOutcome.failed("").error_message == "Unknown error"


def test_status_terminal_flags():
    assert not JobStatus.PENDING.is_terminal
    assert not JobStatus.IN_PROGRESS.is_terminal
    assert JobStatus.COMPLETED.is_terminal
    assert JobStatus.CANCELLED.is_terminal
    assert JobStatus.FAILED.is_terminal


def test_snapshot_counts_and_find():
    pending = make_job(destination_name="clip_2", sequence=2)
    done = make_job()
    done.mark_in_progress()
    done.apply_outcome(JobOutcome.completed())
    snapshot = QueueSnapshot(pending=(pending.view(),), history=(done.view(),))

    assert snapshot.total == 2
    assert snapshot.count(JobStatus.PENDING) == 1
    assert snapshot.count(JobStatus.COMPLETED) == 1
    assert snapshot.count(JobStatus.FAILED) == 0
    assert snapshot.find("clip_2").status is JobStatus.PENDING
    assert snapshot.find("missing") is None
