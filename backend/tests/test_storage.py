"""
Unit tests for storage services.
Tests disk storage on a temp directory and S3 storage against a mocked boto3 client.
"""

import io
import pytest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from app.config import ConfigurationError, S3Settings, StorageSettings
from app.services.storage import DiskStorageService, S3StorageService, build_storage_service


def _s3_settings(**overrides) -> S3Settings:
    values = {
        "endpoint_url": "https://s3.example.com",
        "access_key_id": "key",
        "secret_access_key": "secret",
        "bucket_name": "storefront-uploads",
    }
    values.update(overrides)
    return S3Settings(**values)


class TestBuildStorageService:

    def test_local_is_default(self, tmp_path):
        service = build_storage_service(StorageSettings(root=str(tmp_path)))
        assert isinstance(service, DiskStorageService)

    def test_s3(self):
        with patch("app.services.storage.boto3") as mock_boto3:
            service = build_storage_service(StorageSettings(service="s3", s3=_s3_settings()))

            assert isinstance(service, S3StorageService)
            mock_boto3.client.assert_called_once_with(
                "s3",
                endpoint_url="https://s3.example.com",
                region_name="us-east-1",
                aws_access_key_id="key",
                aws_secret_access_key="secret",
            )

    def test_s3_with_missing_credentials_raises(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_storage_service(StorageSettings(service="s3", s3=_s3_settings(bucket_name=None)))
        assert "S3_BUCKET_NAME" in str(exc_info.value)

    def test_unknown_service_raises(self):
        with pytest.raises(ConfigurationError):
            build_storage_service(StorageSettings(service="gcs"))


class TestDiskStorageService:

    def test_upload_download_delete(self, tmp_path):
        service = DiskStorageService(tmp_path)

        service.upload("abcdef123", b"hello")
        assert (tmp_path / "ab" / "cd" / "abcdef123").read_bytes() == b"hello"
        assert service.exist("abcdef123")
        assert service.download("abcdef123") == b"hello"

        assert service.delete("abcdef123") is True
        assert not service.exist("abcdef123")
        assert service.delete("abcdef123") is False

    def test_upload_accepts_file_objects(self, tmp_path):
        service = DiskStorageService(tmp_path)
        service.upload("filekey", io.BytesIO(b"data"))
        assert service.download("filekey") == b"data"

    def test_download_missing_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DiskStorageService(tmp_path).download("missing")

    def test_keys_with_slashes_are_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            DiskStorageService(tmp_path).upload("../etc/passwd", b"x")

    def test_describe_reports_root(self, tmp_path):
        assert DiskStorageService(tmp_path).describe() == {
            "service": "local",
            "root": str(tmp_path.resolve()),
        }


class TestS3StorageService:

    def test_upload(self):
        client = MagicMock()
        service = S3StorageService(_s3_settings(), client=client)

        assert service.upload("uploads/a.txt", b"hi", content_type="text/plain") == "uploads/a.txt"
        client.put_object.assert_called_once_with(
            Bucket="storefront-uploads", Key="uploads/a.txt", Body=b"hi", ContentType="text/plain"
        )

    def test_download(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"content")}

        assert S3StorageService(_s3_settings(), client=client).download("k") == b"content"
        client.get_object.assert_called_once_with(Bucket="storefront-uploads", Key="k")

    def test_delete(self):
        client = MagicMock()
        assert S3StorageService(_s3_settings(), client=client).delete("k") is True
        client.delete_object.assert_called_once_with(Bucket="storefront-uploads", Key="k")

    def test_exist_false_on_404(self):
        client = MagicMock()
        client.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")

        assert S3StorageService(_s3_settings(), client=client).exist("k") is False

    def test_exist_reraises_other_errors(self):
        client = MagicMock()
        client.head_object.side_effect = ClientError({"Error": {"Code": "403"}}, "HeadObject")

        with pytest.raises(ClientError):
            S3StorageService(_s3_settings(), client=client).exist("k")

    def test_upload_failure_propagates(self):
        client = MagicMock()
        client.put_object.side_effect = Exception("Storage error")

        with pytest.raises(Exception) as exc_info:
            S3StorageService(_s3_settings(), client=client).upload("k", b"x")
        assert "Storage error" in str(exc_info.value)
