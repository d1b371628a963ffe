"""
Integration Tests for Generation Storage
"""

from datetime import datetime, timedelta

import pytest

from motionswap.core.errors import ErrorEnvelope, ErrorKind
from motionswap.services.job_state import JobStateError
from motionswap.services.storage import GenerationDB


def _provider_envelope():
    return ErrorEnvelope(
        kind=ErrorKind.PROVIDER_ERROR,
        code="PROVIDER_REJECTED",
        summary="The input was rejected",
        provider="kling",
        model="klingai/kling-v2.6-motion-control",
        details='{"status": "failure"}',
    )


class TestGenerationDB:
    """Integration tests for generation database operations"""

    @pytest.fixture
    def processing(self, test_db_session):
        """Generation whose inputs are uploaded"""
        return GenerationDB.create_generation(
            test_db_session,
            user_id="user_1",
            source_video_url="https://blob.test/v.mp4",
            character_image_url="https://blob.test/c.png",
            character_name="Astronaut",
        )

    def test_create_generation(self, test_db_session, processing, check_invariants):
        """New generation starts processing with no run attached."""
        assert processing.id is not None
        assert processing.status == "processing"
        assert processing.run_id is None
        assert processing.state_transitions[0]["event"] == "generation_created"
        check_invariants(processing)

    def test_pending_then_start_processing(self, test_db_session, check_invariants):
        """Uploading generation advances once its inputs exist."""
        pending = GenerationDB.create_pending_generation(
            test_db_session,
            user_id="user_1",
            character_name="Astronaut",
            aspect_ratio="9:16",
        )
        assert pending.status == "uploading"
        assert pending.source_video_url is None
        check_invariants(pending)

        started = GenerationDB.start_processing(
            test_db_session,
            pending.id,
            source_video_url="https://blob.test/v.mp4",
            character_image_url="https://blob.test/c.png",
            user_email="someone@example.com",
        )

        assert started.status == "processing"
        assert started.source_video_url == "https://blob.test/v.mp4"
        assert started.user_email == "someone@example.com"
        assert started.aspect_ratio == "9:16"
        check_invariants(started)

    def test_start_processing_twice_rejected(self, test_db_session, processing):
        """A processing generation cannot be advanced again."""
        with pytest.raises(JobStateError):
            GenerationDB.start_processing(
                test_db_session,
                processing.id,
                source_video_url="https://blob.test/other.mp4",
                character_image_url="https://blob.test/c.png",
            )

    def test_set_run_id_once(self, test_db_session, processing):
        """Run id is recorded at most once."""
        attached = GenerationDB.set_run_id(test_db_session, processing.id, "run_1")
        assert attached.run_id == "run_1"
        assert attached.state_transitions[-1]["event"] == "run_attached:run_1"

        with pytest.raises(JobStateError):
            GenerationDB.set_run_id(test_db_session, processing.id, "run_2")

        assert GenerationDB.get_generation(test_db_session, processing.id).run_id == "run_1"

    def test_set_run_id_requires_processing(self, test_db_session):
        """Run cannot attach to a generation that is still uploading."""
        pending = GenerationDB.create_pending_generation(test_db_session, user_id="user_1")

        with pytest.raises(JobStateError):
            GenerationDB.set_run_id(test_db_session, pending.id, "run_1")

    def test_mark_completed(self, test_db_session, processing, check_invariants):
        """Completing stores the result and stamps completed_at."""
        GenerationDB.set_run_id(test_db_session, processing.id, "run_1")

        completed = GenerationDB.mark_completed(
            test_db_session, processing.id, "/blobs/generations/out.mp4"
        )

        assert completed.status == "completed"
        assert completed.video_url == "/blobs/generations/out.mp4"
        check_invariants(completed)

    def test_mark_completed_requires_run(self, test_db_session, processing):
        """Completing a generation no run ever claimed is a logic error."""
        with pytest.raises(JobStateError):
            GenerationDB.mark_completed(test_db_session, processing.id, "/blobs/out.mp4")

    def test_mark_completed_requires_url(self, test_db_session, processing):
        with pytest.raises(ValueError):
            GenerationDB.mark_completed(test_db_session, processing.id, "")

    def test_mark_failed(self, test_db_session, processing, check_invariants):
        """Failing stores the envelope and summary."""
        failed = GenerationDB.mark_failed(test_db_session, processing.id, _provider_envelope())

        assert failed.status == "failed"
        assert failed.error_message == "The input was rejected"
        assert failed.error_details["kind"] == "provider_error"
        assert failed.error_details["code"] == "PROVIDER_REJECTED"
        check_invariants(failed)

    def test_single_terminal_transition(self, test_db_session, processing):
        """Neither complete nor fail may follow a terminal state."""
        GenerationDB.set_run_id(test_db_session, processing.id, "run_1")
        GenerationDB.mark_completed(test_db_session, processing.id, "/blobs/out.mp4")

        with pytest.raises(JobStateError):
            GenerationDB.mark_failed(test_db_session, processing.id, _provider_envelope())
        with pytest.raises(JobStateError):
            GenerationDB.mark_completed(test_db_session, processing.id, "/blobs/other.mp4")

        generation = GenerationDB.get_generation(test_db_session, processing.id)
        assert generation.status == "completed"
        assert generation.video_url == "/blobs/out.mp4"
        assert generation.error_details is None

    def test_mutations_on_missing_row_return_none(self, test_db_session):
        """A deleted generation is reported as None, not an error."""
        assert GenerationDB.set_run_id(test_db_session, 404, "run_1") is None
        assert GenerationDB.mark_completed(test_db_session, 404, "/blobs/out.mp4") is None
        assert GenerationDB.mark_failed(test_db_session, 404, _provider_envelope()) is None

    def test_delete_for_owner(self, test_db_session, processing):
        """Only the owner deletes; deleting twice reports not found."""
        assert GenerationDB.delete_for_owner(test_db_session, processing.id, "someone_else") is False
        assert GenerationDB.get_generation(test_db_session, processing.id) is not None

        assert GenerationDB.delete_for_owner(test_db_session, processing.id, "user_1") is True
        assert GenerationDB.get_generation(test_db_session, processing.id) is None

        assert GenerationDB.delete_for_owner(test_db_session, processing.id, "user_1") is False

    def test_list_for_owner(self, test_db_session):
        """Listing is owner-scoped, most recent first and bounded."""
        now = datetime.utcnow()
        for i in range(5):
            generation = GenerationDB.create_pending_generation(test_db_session, user_id="user_1")
            generation.created_at = now - timedelta(minutes=10 - i)
        GenerationDB.create_pending_generation(test_db_session, user_id="user_2")
        test_db_session.commit()

        listed = GenerationDB.list_for_owner(test_db_session, "user_1", limit=3)

        assert len(listed) == 3
        assert all(g.user_id == "user_1" for g in listed)
        assert listed[0].created_at >= listed[1].created_at >= listed[2].created_at

    def test_expire_stale(self, test_db_session, processing, check_invariants):
        """Generations older than the budget are failed with JOB_TIMEOUT."""
        fresh = GenerationDB.create_pending_generation(test_db_session, user_id="user_1")
        done = GenerationDB.create_generation(
            test_db_session,
            user_id="user_1",
            source_video_url="https://blob.test/v.mp4",
            character_image_url="https://blob.test/c.png",
        )
        GenerationDB.set_run_id(test_db_session, done.id, "run_done")
        GenerationDB.mark_completed(test_db_session, done.id, "/blobs/out.mp4")

        an_hour_ago = datetime.utcnow() - timedelta(hours=1)
        processing.created_at = an_hour_ago
        processing.processing_started_at = an_hour_ago
        done.created_at = an_hour_ago
        test_db_session.commit()

        expired = GenerationDB.expire_stale(test_db_session, older_than_s=920)

        assert expired == 1
        stale = GenerationDB.get_generation(test_db_session, processing.id)
        assert stale.status == "failed"
        assert stale.error_details["code"] == "JOB_TIMEOUT"
        assert stale.error_details["kind"] == "infrastructure_error"
        check_invariants(stale)

        assert GenerationDB.get_generation(test_db_session, fresh.id).status == "uploading"
        assert GenerationDB.get_generation(test_db_session, done.id).status == "completed"

    def test_expire_stale_scoped_to_owner(self, test_db_session, processing):
        processing.created_at = datetime.utcnow() - timedelta(hours=1)
        processing.processing_started_at = processing.created_at
        test_db_session.commit()

        assert GenerationDB.expire_stale(test_db_session, 920, user_id="user_2") == 0
        assert GenerationDB.expire_stale(test_db_session, 920, user_id="user_1") == 1

    def test_expire_stale_measures_processing_from_start(self, test_db_session):
        """A row created long ago but only just processing is left running."""
        generation = GenerationDB.create_pending_generation(test_db_session, user_id="user_1")
        generation.created_at = datetime.utcnow() - timedelta(seconds=925)
        test_db_session.commit()

        GenerationDB.start_processing(
            test_db_session,
            generation.id,
            source_video_url="https://blob.test/v.mp4",
            character_image_url="https://blob.test/c.png",
        )
        GenerationDB.set_run_id(test_db_session, generation.id, "run_1")

        assert GenerationDB.expire_stale(test_db_session, 920, user_id="user_1") == 0

        completed = GenerationDB.mark_completed(test_db_session, generation.id, "/blobs/out.mp4")
        assert completed.status == "completed"

    def test_run_attach_restarts_processing_window(self, test_db_session, processing):
        """Queue wait before the worker picks the run up does not count."""
        processing.processing_started_at = datetime.utcnow() - timedelta(hours=1)
        test_db_session.commit()

        attached = GenerationDB.set_run_id(test_db_session, processing.id, "run_1")

        assert attached.processing_started_at > datetime.utcnow() - timedelta(minutes=1)
        assert GenerationDB.expire_stale(test_db_session, 920) == 0

    def test_expire_stale_uploading_ages_from_creation(self, test_db_session):
        generation = GenerationDB.create_pending_generation(test_db_session, user_id="user_1")
        generation.created_at = datetime.utcnow() - timedelta(hours=1)
        test_db_session.commit()

        assert GenerationDB.expire_stale(test_db_session, 920) == 1
        assert GenerationDB.get_generation(test_db_session, generation.id).status == "failed"
