"""
Tests for the SQLite job store.
"""

import pytest


def _job(**kwargs):
    from quickedit.core.jobs import Job, StyleConfig
    kwargs.setdefault("source_ref", "/videos/in.mp4")
    kwargs.setdefault("style_config", StyleConfig(style="vlog", intensity="high", quality="720p"))
    return Job(**kwargs)


class TestCreateAndRead:
    def test_create_and_get(self, store):
        from quickedit.core.jobs import JobStatus
        job = store.create(_job())
        got = store.get(job.id)
        assert got.status == JobStatus.QUEUED
        assert got.progress == 0
        assert got.output_ref is None
        assert got.style_config.style == "vlog"
        assert got.style_config.quality == "720p"
        assert got.source_ref == "/videos/in.mp4"

    def test_duplicate_id(self, store):
        from quickedit.core.errors import DuplicateIdError
        job = store.create(_job())
        with pytest.raises(DuplicateIdError):
            store.create(_job(id=job.id))

    def test_not_found(self, store):
        from quickedit.core.errors import NotFoundError
        with pytest.raises(NotFoundError):
            store.get("missing")
        with pytest.raises(NotFoundError):
            store.update_progress("missing", 10, "Analyzing video")
        with pytest.raises(NotFoundError):
            store.history("missing")

    def test_list_jobs_newest_first(self, store):
        from quickedit.core.jobs import JobStatus
        first = store.create(_job(created_at="2026-01-01T00:00:00+00:00"))
        second = store.create(_job(created_at="2026-01-02T00:00:00+00:00"))
        store.mark_error(first.id, "boom")
        assert [j.id for j in store.list_jobs()] == [second.id, first.id]
        assert [j.id for j in store.list_jobs(status=JobStatus.ERROR)] == [first.id]
        assert len(store.list_jobs(limit=1)) == 1

    def test_persists_across_connections(self, tmp_path):
        from quickedit.core.store import JobStore
        path = tmp_path / "jobs.db"
        with JobStore(path) as s:
            job = s.create(_job())
            s.update_progress(job.id, 25, "Detecting cut points")
        with JobStore(path) as s:
            assert s.get(job.id).progress == 25


class TestProgress:
    def test_update_progress(self, store):
        from quickedit.core.jobs import JobStatus
        job = store.create(_job())
        updated = store.update_progress(job.id, 10, "Analyzing video")
        assert updated.status == JobStatus.PROCESSING
        assert updated.progress == 10
        assert updated.current_step == "Analyzing video"

    def test_progress_never_decreases(self, store):
        job = store.create(_job())
        store.update_progress(job.id, 50, "Applying editing style")
        after = store.update_progress(job.id, 10, "Analyzing video")
        assert after.progress == 50
        assert after.current_step == "Analyzing video"

    @pytest.mark.parametrize("value", [-1, 100, 150])
    def test_progress_range(self, store, value):
        job = store.create(_job())
        with pytest.raises(ValueError):
            store.update_progress(job.id, value, "step")

    def test_claim(self, store):
        from quickedit.core.jobs import JobStatus
        job = store.create(_job())
        claimed = store.claim(job.id, step="Starting")
        assert claimed.status == JobStatus.PROCESSING
        assert claimed.current_step == "Starting"
        # already processing: returned unchanged
        store.update_progress(job.id, 25, "Detecting cut points")
        assert store.claim(job.id).current_step == "Detecting cut points"


class TestTerminalStates:
    def test_completed_requires_output(self, store):
        job = store.create(_job())
        with pytest.raises(ValueError):
            store.mark_completed(job.id, "")

    def test_completed_sets_output_and_100(self, store):
        from quickedit.core.jobs import JobStatus
        job = store.create(_job())
        store.update_progress(job.id, 90, "Adding caption")
        done = store.mark_completed(job.id, "/out/x.mp4")
        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100
        assert done.output_ref == "/out/x.mp4"

    def test_error_has_no_output(self, store):
        from quickedit.core.jobs import JobStatus
        job = store.create(_job())
        store.update_progress(job.id, 50, "Applying editing style")
        failed = store.mark_error(job.id, "Video processing failed")
        assert failed.status == JobStatus.ERROR
        assert failed.output_ref is None
        assert failed.progress == 50
        assert failed.message == "Video processing failed"

    @pytest.mark.parametrize("finish", ["completed", "error"])
    def test_terminal_jobs_are_immutable(self, store, finish):
        from quickedit.core.errors import TerminalStateError
        job = store.create(_job())
        store.update_progress(job.id, 50, "Applying editing style")
        if finish == "completed":
            store.mark_completed(job.id, "/out/x.mp4")
        else:
            store.mark_error(job.id, "failed")
        before = store.get(job.id)

        with pytest.raises(TerminalStateError):
            store.update_progress(job.id, 75, "Applying jump cuts")
        with pytest.raises(TerminalStateError):
            store.mark_completed(job.id, "/out/y.mp4")
        with pytest.raises(TerminalStateError):
            store.mark_error(job.id, "again")
        with pytest.raises(TerminalStateError):
            store.claim(job.id)

        after = store.get(job.id)
        assert (after.status, after.progress, after.current_step, after.output_ref) == \
               (before.status, before.progress, before.current_step, before.output_ref)

    def test_completed_iff_output(self, store):
        from quickedit.core.jobs import JobStatus
        ok = store.create(_job())
        bad = store.create(_job())
        pending = store.create(_job())
        store.mark_completed(ok.id, "/out/ok.mp4")
        store.mark_error(bad.id, "failed")
        for job in store.list_jobs():
            assert (job.status == JobStatus.COMPLETED) == (job.output_ref is not None)
        assert store.get(pending.id).output_ref is None


class TestHistory:
    def test_history_in_order(self, store):
        from quickedit.core.jobs import HistoryEntry, Outcome
        job = store.create(_job())
        store.add_history(HistoryEntry(job.id, "analyze", Outcome.SUCCESS, "10.0s"))
        store.add_history(HistoryEntry(job.id, "detect_cuts", Outcome.DEGRADED, "failed"))
        store.add_history(HistoryEntry(job.id, "apply_style", Outcome.SUCCESS))
        steps = [(e.step, e.outcome) for e in store.history(job.id)]
        assert steps == [
            ("analyze", Outcome.SUCCESS),
            ("detect_cuts", Outcome.DEGRADED),
            ("apply_style", Outcome.SUCCESS),
        ]

    def test_history_for_unknown_job(self, store):
        from quickedit.core.errors import NotFoundError
        from quickedit.core.jobs import HistoryEntry, Outcome
        with pytest.raises(NotFoundError):
            store.add_history(HistoryEntry("missing", "analyze", Outcome.SUCCESS))

    def test_history_allowed_after_terminal(self, store):
        from quickedit.core.jobs import HistoryEntry, Outcome
        job = store.create(_job())
        store.mark_completed(job.id, "/out/x.mp4")
        store.add_history(HistoryEntry(job.id, "pipeline", Outcome.COMPLETED, "Completed"))
        assert store.history(job.id)[-1].outcome == Outcome.COMPLETED


class TestRecovery:
    def test_fail_interrupted(self, store):
        from quickedit.core.jobs import JobStatus, Outcome
        queued = store.create(_job())
        running = store.create(_job())
        done = store.create(_job())
        store.update_progress(running.id, 50, "Applying editing style")
        store.mark_completed(done.id, "/out/x.mp4")

        ids = store.fail_interrupted("Processing was interrupted")
        assert set(ids) == {queued.id, running.id}
        for jid in ids:
            job = store.get(jid)
            assert job.status == JobStatus.ERROR
            assert job.output_ref is None
            assert store.history(jid)[-1].outcome == Outcome.ERROR
        assert store.get(done.id).status == JobStatus.COMPLETED
        assert store.fail_interrupted() == []

    def test_schema_version_mismatch(self, tmp_path):
        import sqlite3

        from quickedit.core.errors import StoreError
        from quickedit.core.store import JobStore
        path = str(tmp_path / "jobs.db")
        conn = sqlite3.connect(path)
        conn.execute("PRAGMA user_version = 99")
        conn.close()
        with pytest.raises(StoreError):
            JobStore(path)
