"""Tests for TransferJob and DeleteJob against the fake S3 client."""

import threading
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from bucket_mirror.core.error_handling import RetryPolicy
from bucket_mirror.core.jobs import DeleteJob, JobState, TransferJob
from bucket_mirror.core.models import (
    InconclusivePolicy,
    MirrorConfig,
    ObjectSummary,
    TransferOutcome,
)
from bucket_mirror.core.stats import MirrorStats
from bucket_mirror.storage.s3 import S3StorageProvider
from bucket_mirror.testing.fakes import FakeLogger, FakeS3Client


@pytest.fixture
def s3_client():
    client = FakeS3Client()
    client.create_bucket("source")
    client.create_bucket("dest")
    return client


@pytest.fixture
def provider(s3_client):
    return S3StorageProvider(s3_client)


@pytest.fixture
def stats():
    return MirrorStats()


@pytest.fixture
def logger():
    return FakeLogger()


def make_config(**overrides):
    values = {"source_container": "source", "dest_container": "dest", "retry_delay": 0}
    values.update(overrides)
    return MirrorConfig(**values)


def summary_of(client, key, bucket="source"):
    obj = client.get_bucket(bucket).get_object(key)
    return ObjectSummary(key=key, size=obj.size, last_modified=obj.last_modified, etag=obj.etag)


def make_job(client, provider, stats, logger, key="a", config=None, **kwargs):
    return TransferJob(
        summary_of(client, key),
        provider,
        provider,
        config or make_config(),
        stats,
        logger,
        **kwargs,
    )


class TestTransferJobDecision:
    def test_unchanged_key_is_skipped(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"x" * 10)
        s3_client.get_bucket("dest").add_object("a", b"x" * 10)

        result = make_job(s3_client, provider, stats, logger).run()

        assert result.outcome == TransferOutcome.SKIPPED_UNCHANGED
        assert s3_client.call_count("copy_object") == 0
        assert stats.objects_skipped.value == 1
        assert stats.get_count.value == 1

    def test_changed_content_same_size_is_copied(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"new-data!!")
        s3_client.get_bucket("dest").add_object("a", b"old-data!!")

        result = make_job(s3_client, provider, stats, logger).run()

        assert result.outcome == TransferOutcome.COPIED
        assert s3_client.get_bucket("dest").get_object("a").body == b"new-data!!"

    def test_absent_key_is_copied_once(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("b", b"y" * 20, content_type="text/plain")

        job = make_job(s3_client, provider, stats, logger, key="b")
        result = job.run()

        assert result.outcome == TransferOutcome.COPIED
        assert result.bytes_copied == 20
        assert s3_client.call_count("copy_object") == 1
        copy_args = s3_client.calls_for("copy_object")[0]
        assert copy_args["CopySource"] == {"Bucket": "source", "Key": "b"}
        assert copy_args["MetadataDirective"] == "REPLACE"
        assert copy_args["ContentType"] == "text/plain"
        assert s3_client.get_bucket("dest").get_object("b").body == b"y" * 20
        # destination head + source head + source ACL
        assert stats.get_count.value == 3
        assert stats.copy_count.value == 1
        assert stats.objects_copied.value == 1
        assert stats.bytes_copied.value == 20
        assert job.transitions == [
            JobState.CREATED, JobState.DECIDING, JobState.COPYING, JobState.COMPLETED
        ]

    def test_dry_run_never_copies(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("b", b"y" * 20)

        result = make_job(s3_client, provider, stats, logger, key="b",
                          config=make_config(dry_run=True)).run()

        assert result.outcome == TransferOutcome.DRY_RUN_WOULD_COPY
        assert s3_client.call_count("copy_object") == 0
        assert s3_client.get_bucket("dest").get_object("b") is None
        assert stats.dry_run_copies.value == 1
        assert stats.objects_copied.value == 0
        assert any("Would have copied b" in message for message in logger.messages("INFO"))

    def test_old_key_filtered_without_remote_calls(self, s3_client, provider, stats, logger):
        old = datetime.now(timezone.utc) - timedelta(days=10)
        s3_client.get_bucket("source").add_object("old", b"z", last_modified=old)

        job = make_job(s3_client, provider, stats, logger, key="old",
                       config=make_config(ctime="1d"))
        result = job.run()

        assert result.outcome == TransferOutcome.SKIPPED_FILTERED
        assert s3_client.calls == []
        assert stats.objects_filtered.value == 1
        assert job.state == JobState.SKIPPED

    def test_recent_key_passes_age_filter(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("new", b"z")

        result = make_job(s3_client, provider, stats, logger, key="new",
                          config=make_config(ctime="1d")).run()

        assert result.outcome == TransferOutcome.COPIED

    def test_missing_last_modified_is_not_filtered(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("k", b"z")
        summary = ObjectSummary(key="k", size=1, etag="whatever")

        result = TransferJob(summary, provider, provider, make_config(ctime="1d", verbose=True),
                             stats, logger).run()

        assert result.outcome == TransferOutcome.COPIED
        assert any("No Last-Modified" in message for message in logger.messages("INFO"))

    def test_dest_prefix_remaps_key(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("src/file.txt", b"data")
        config = make_config(prefix="src/", dest_prefix="dst/")

        job = make_job(s3_client, provider, stats, logger, key="src/file.txt", config=config)
        result = job.run()

        assert job.dest_key == "dst/file.txt"
        assert result.dest_key == "dst/file.txt"
        assert s3_client.get_bucket("dest").get_object("dst/file.txt").body == b"data"


class TestTransferJobRetries:
    def test_transient_failures_then_success(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        s3_client.fail_next("copy_object", times=4)

        result = make_job(s3_client, provider, stats, logger).run()

        assert result.outcome == TransferOutcome.COPIED
        assert s3_client.call_count("copy_object") == 5
        assert stats.copy_count.value == 5
        assert stats.copy_errors.value == 0

    def test_always_failing_copy_fails_after_max_retries(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        s3_client.fail_next("copy_object", times=20)

        job = make_job(s3_client, provider, stats, logger)
        result = job.run()

        assert result.outcome == TransferOutcome.FAILED
        assert result.error
        assert s3_client.call_count("copy_object") == 5
        assert stats.copy_count.value == 5
        assert stats.copy_errors.value == 1
        assert job.state == JobState.FAILED
        assert logger.get_logs("ERROR")

    def test_cancel_during_retry_delay_fails_the_key(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        s3_client.fail_next("copy_object", times=20)
        cancel = threading.Event()
        policy = RetryPolicy(max_attempts=5, delay=5, cancel_event=cancel)
        timer = threading.Timer(0.2, cancel.set)

        job = make_job(s3_client, provider, stats, logger, retry_policy=policy)
        started = time.monotonic()
        timer.start()
        try:
            result = job.run()
        finally:
            timer.cancel()

        assert time.monotonic() - started < 4
        assert result.outcome == TransferOutcome.FAILED
        assert job.state == JobState.FAILED
        assert s3_client.call_count("copy_object") == 1
        assert stats.copy_errors.value == 1
        assert any("cancelled" in message for message in logger.messages("ERROR"))

    def test_not_found_on_destination_is_not_retried(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")

        make_job(s3_client, provider, stats, logger).run()

        heads = [call for call in s3_client.calls_for("head_object") if call["Bucket"] == "dest"]
        assert len(heads) == 1


class TestInconclusiveDestination:
    def test_unreadable_destination_skips_by_default(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        s3_client.fail_next("head_object", times=5, code="AccessDenied", status=403)

        result = make_job(s3_client, provider, stats, logger).run()

        assert result.outcome == TransferOutcome.SKIPPED_FILTERED
        assert s3_client.call_count("copy_object") == 0
        assert stats.objects_filtered.value == 1
        assert not stats.has_errors
        assert logger.get_logs("WARNING")

    def test_unreadable_destination_fails_when_configured(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        s3_client.fail_next("head_object", times=5, code="AccessDenied", status=403)
        config = make_config(inconclusive_policy=InconclusivePolicy.FAIL)

        result = make_job(s3_client, provider, stats, logger, config=config).run()

        assert result.outcome == TransferOutcome.FAILED
        assert "destination state unknown" in result.error
        assert s3_client.call_count("copy_object") == 0
        assert stats.copy_errors.value == 1


class TestAccessControl:
    def test_grants_are_replicated(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object(
            "a",
            b"abc",
            grants=[
                {"Grantee": {"Type": "CanonicalUser", "ID": "owner"}, "Permission": "FULL_CONTROL"},
                {"Grantee": {"Type": "Group", "URI": "http://acs.amazonaws.com/groups/global/AllUsers"},
                 "Permission": "READ"},
            ],
        )

        make_job(s3_client, provider, stats, logger).run()

        copy_args = s3_client.calls_for("copy_object")[0]
        assert copy_args["GrantFullControl"] == 'id="owner"'
        assert copy_args["GrantRead"] == 'uri="http://acs.amazonaws.com/groups/global/AllUsers"'
        assert len(s3_client.get_bucket("dest").get_object("a").grants) == 2

    def test_unreadable_acl_fails_the_key(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        s3_client.fail_next("get_object_acl", times=5, code="AccessDenied", status=403)

        result = make_job(s3_client, provider, stats, logger).run()

        assert result.outcome == TransferOutcome.FAILED
        assert s3_client.call_count("copy_object") == 0

    def test_encrypted_destination_tolerates_unreadable_acl(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        s3_client.fail_next("get_object_acl", times=5, code="AccessDenied", status=403)
        config = make_config(encrypted_destination=True)

        result = make_job(s3_client, provider, stats, logger, config=config).run()

        assert result.outcome == TransferOutcome.COPIED
        copy_args = s3_client.calls_for("copy_object")[0]
        assert copy_args["ServerSideEncryption"] == "AES256"
        assert not any(name.startswith("Grant") for name in copy_args)
        assert s3_client.get_bucket("dest").get_object("a").server_side_encryption == "AES256"


class TestJobLifecycle:
    def test_job_runs_only_once(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        job = make_job(s3_client, provider, stats, logger)
        job.run()

        with pytest.raises(RuntimeError):
            job.run()
        assert stats.objects_copied.value == 1

    def test_completion_callback_called_once(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        on_complete = Mock()

        result = make_job(s3_client, provider, stats, logger, on_complete=on_complete).run()

        on_complete.assert_called_once_with(result)

    def test_completion_callback_called_on_failure(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("a", b"abc")
        s3_client.fail_next("copy_object", times=5)
        on_complete = Mock()

        result = make_job(s3_client, provider, stats, logger, on_complete=on_complete).run()

        assert result.outcome == TransferOutcome.FAILED
        on_complete.assert_called_once_with(result)


class TestDeleteJob:
    def make_delete_job(self, provider, stats, logger, key="gone", config=None):
        config = config or make_config(delete_removed=True)
        return DeleteJob(key, key, provider, provider, config, stats, logger)

    def test_deletes_key_missing_from_source(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("dest").add_object("gone", b"old")

        job = self.make_delete_job(provider, stats, logger)
        result = job.run()

        assert result.outcome == TransferOutcome.DELETED
        assert s3_client.get_bucket("dest").get_object("gone") is None
        assert stats.objects_deleted.value == 1
        assert stats.delete_count.value == 1
        assert JobState.DELETING in job.transitions

    def test_keeps_key_present_in_source(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("source").add_object("kept", b"v")
        s3_client.get_bucket("dest").add_object("kept", b"v")

        result = self.make_delete_job(provider, stats, logger, key="kept").run()

        assert result.outcome == TransferOutcome.SKIPPED_UNCHANGED
        assert s3_client.call_count("delete_object") == 0
        assert stats.objects_skipped.value == 0

    def test_dry_run_does_not_delete(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("dest").add_object("gone", b"old")
        config = make_config(delete_removed=True, dry_run=True)

        result = self.make_delete_job(provider, stats, logger, config=config).run()

        assert result.outcome == TransferOutcome.DRY_RUN_WOULD_DELETE
        assert s3_client.get_bucket("dest").get_object("gone") is not None
        assert stats.dry_run_deletes.value == 1

    def test_failing_delete_counts_delete_error(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("dest").add_object("gone", b"old")
        s3_client.fail_next("delete_object", times=5)

        result = self.make_delete_job(provider, stats, logger).run()

        assert result.outcome == TransferOutcome.FAILED
        assert stats.delete_errors.value == 1
        assert stats.copy_errors.value == 0
        assert stats.delete_count.value == 5

    def test_unreadable_source_keeps_destination(self, s3_client, provider, stats, logger):
        s3_client.get_bucket("dest").add_object("gone", b"old")
        s3_client.fail_next("head_object", times=5, code="AccessDenied", status=403)

        result = self.make_delete_job(provider, stats, logger).run()

        assert result.outcome == TransferOutcome.SKIPPED_FILTERED
        assert s3_client.get_bucket("dest").get_object("gone") is not None
