from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcloud_exceptions

from casefile.config import Settings
from casefile.errors import BlobNotFound, StorageError
from casefile.storage.blob_store import GCSBlobStore, LocalBlobStore, build_blob_store


def test_local_put_get_delete(tmp_path) -> None:
    store = LocalBlobStore(tmp_path)
    store.put("matter-files", "matters/m1/d1/a.pdf", b"payload", "application/pdf")

    assert store.get("matter-files", "matters/m1/d1/a.pdf") == b"payload"
    assert (tmp_path / "matter-files" / "matters/m1/d1/a.pdf").exists()

    store.delete("matter-files", "matters/m1/d1/a.pdf")
    with pytest.raises(BlobNotFound):
        store.get("matter-files", "matters/m1/d1/a.pdf")


def test_local_put_never_overwrites(tmp_path) -> None:
    store = LocalBlobStore(tmp_path)
    store.put("b", "p/file.pdf", b"first", "application/pdf")

    with pytest.raises(StorageError):
        store.put("b", "p/file.pdf", b"second", "application/pdf")
    assert store.get("b", "p/file.pdf") == b"first"


def test_local_delete_of_missing_object_is_a_no_op(tmp_path) -> None:
    LocalBlobStore(tmp_path).delete("b", "never/written.pdf")


def test_local_rejects_paths_outside_root(tmp_path) -> None:
    store = LocalBlobStore(tmp_path / "root")
    with pytest.raises(StorageError):
        store.put("b", "../../outside.pdf", b"x", "application/pdf")


def test_local_signed_url_points_at_the_file(tmp_path) -> None:
    store = LocalBlobStore(tmp_path)
    store.put("b", "p/file.pdf", b"x", "application/pdf")

    url = store.get_signed_url("b", "p/file.pdf", timedelta(minutes=5))
    assert url.startswith("file://")
    assert url.endswith("p/file.pdf")

    with pytest.raises(BlobNotFound):
        store.get_signed_url("b", "p/missing.pdf", timedelta(minutes=5))


def _gcs_store():
    client = MagicMock()
    blob = client.bucket.return_value.blob.return_value
    return GCSBlobStore(client), client, blob


def test_gcs_put_only_creates_new_objects() -> None:
    store, client, blob = _gcs_store()
    store.put("matter-files", "matters/m1/d1/a.pdf", b"payload", "application/pdf")

    client.bucket.assert_called_with("matter-files")
    client.bucket.return_value.blob.assert_called_with("matters/m1/d1/a.pdf")
    blob.upload_from_string.assert_called_once_with(
        b"payload", content_type="application/pdf", if_generation_match=0
    )


def test_gcs_put_maps_existing_object_to_storage_error() -> None:
    store, _, blob = _gcs_store()
    blob.upload_from_string.side_effect = gcloud_exceptions.PreconditionFailed("exists")

    with pytest.raises(StorageError):
        store.put("matter-files", "p", b"x", "application/pdf")


def test_gcs_put_maps_api_failure_to_storage_error() -> None:
    store, _, blob = _gcs_store()
    blob.upload_from_string.side_effect = gcloud_exceptions.ServiceUnavailable("down")

    with pytest.raises(StorageError):
        store.put("matter-files", "p", b"x", "application/pdf")


def test_gcs_get_missing_object_raises_blob_not_found() -> None:
    store, _, blob = _gcs_store()
    blob.download_as_bytes.side_effect = gcloud_exceptions.NotFound("gone")

    with pytest.raises(BlobNotFound):
        store.get("matter-files", "p")


def test_gcs_delete_of_missing_object_is_a_no_op() -> None:
    store, _, blob = _gcs_store()
    blob.delete.side_effect = gcloud_exceptions.NotFound("gone")

    store.delete("matter-files", "p")


def test_gcs_delete_failure_raises_storage_error() -> None:
    store, _, blob = _gcs_store()
    blob.delete.side_effect = gcloud_exceptions.InternalServerError("boom")

    with pytest.raises(StorageError):
        store.delete("matter-files", "p")


def test_build_blob_store_selects_backend(tmp_path) -> None:
    local = build_blob_store(Settings(_env_file=None, storage_backend="local", local_storage_path=tmp_path))
    assert isinstance(local, LocalBlobStore)

    gcs = build_blob_store(Settings(_env_file=None, storage_backend="gcs"), client=MagicMock())
    assert isinstance(gcs, GCSBlobStore)

    with pytest.raises(ValueError):
        build_blob_store(Settings(_env_file=None, storage_backend="s3"))
