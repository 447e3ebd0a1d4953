"""
Integration tests for the ingestion service.
"""
from ingest_service.coordinator import UploadCoordinator
from ingest_service.monitor import FolderMonitor
from ingest_service.uploader import S3Uploader


def build_coordinator(watch_dir, s3_client, tracker, ingest_time, delete_after_upload=False):
    monitor = FolderMonitor(watch_dir, stability_threshold=0.2, poll_interval=0.05)
    uploader = S3Uploader(
        'test-bucket',
        s3_client=s3_client,
        delete_after_upload=delete_after_upload,
        clock=lambda: ingest_time
    )
    return UploadCoordinator(monitor, uploader, tracker, debounce_delay=0.1)


def test_dropped_file_is_uploaded_and_recorded(tmp_upload_dir, mock_aws, upload_tracker,
                                               ingest_time, wait_for):
    """Test the full flow from file drop to status record."""
    existing = tmp_upload_dir / "before-start.jpg"
    existing.write_bytes(b"old frame")

    coordinator = build_coordinator(tmp_upload_dir, mock_aws, upload_tracker, ingest_time)
    coordinator.start()
    try:
        new_file = tmp_upload_dir / "motion.mp4"
        new_file.write_bytes(b"\x00" * 2048)
        (tmp_upload_dir / ".in-progress.mp4").write_bytes(b"partial")

        assert wait_for(lambda: coordinator.get_stats().files_uploaded == 2, timeout=10)
    finally:
        coordinator.stop()

    keys = sorted(
        obj["Key"] for obj in mock_aws.list_objects_v2(Bucket="test-bucket")["Contents"]
    )
    assert keys == ["2024/03/15/before-start.jpg", "2024/03/15/motion.mp4"]

    record = upload_tracker.get_record("motion.mp4")
    assert record["status"] == "uploaded"
    assert record["storagePath"] == "s3://test-bucket/2024/03/15/motion.mp4"
    assert upload_tracker.get_record(".in-progress.mp4") is None

    stats = coordinator.get_stats()
    assert stats.files_processed == 2
    assert stats.files_failed == 0


def test_delete_after_upload_clears_drop_folder(tmp_upload_dir, mock_aws, upload_tracker,
                                                ingest_time, wait_for):
    coordinator = build_coordinator(tmp_upload_dir, mock_aws, upload_tracker, ingest_time,
                                    delete_after_upload=True)
    coordinator.start()
    try:
        dropped = tmp_upload_dir / "snapshot.png"
        dropped.write_bytes(b"png")

        assert wait_for(lambda: upload_tracker.get_record("snapshot.png") is not None,
                        timeout=10)
        assert wait_for(lambda: not dropped.exists())
    finally:
        coordinator.stop()

    assert coordinator.get_stats().files_uploaded == 1


def test_upload_failure_is_isolated(tmp_upload_dir, mock_aws, upload_tracker,
                                    ingest_time, wait_for):
    """A bucket error for one file leaves the watcher running for the next."""
    coordinator = build_coordinator(tmp_upload_dir, mock_aws, upload_tracker, ingest_time)
    coordinator.uploader.bucket = "missing-bucket"
    coordinator.start()
    try:
        (tmp_upload_dir / "first.jpg").write_bytes(b"1")
        assert wait_for(lambda: coordinator.get_stats().files_failed == 1, timeout=10)

        coordinator.uploader.bucket = "test-bucket"
        (tmp_upload_dir / "second.jpg").write_bytes(b"2")
        assert wait_for(lambda: coordinator.get_stats().files_uploaded == 1, timeout=10)
    finally:
        coordinator.stop()

    assert upload_tracker.get_record("first.jpg") is None
    assert upload_tracker.get_record("second.jpg") is not None
