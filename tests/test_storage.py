from __future__ import annotations

import io
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError
from werkzeug.datastructures import FileStorage

from salonflow.storage import InvalidImage, delete_image, upload_image


def _file(name: str, content_type: str = "image/png") -> FileStorage:
    return FileStorage(stream=io.BytesIO(b"data"), filename=name, content_type=content_type)


def test_upload_image_uses_prefix_and_content_type() -> None:
    with patch("salonflow.storage.boto3") as mock_boto3:
        key, url = upload_image(_file("Photo.PNG"), "bucket", "/salons/1/staff/2/")

    assert key.startswith("salons/1/staff/2/")
    assert key.endswith(".png")
    assert url == f"https://bucket.s3.amazonaws.com/{key}"
    mock_boto3.client.assert_called_once_with("s3")
    _, kwargs = mock_boto3.client.return_value.upload_fileobj.call_args
    assert kwargs["ExtraArgs"] == {"ContentType": "image/png"}


@pytest.mark.parametrize("name", ["", "no-extension", "script.exe"])
def test_upload_rejects_invalid_files(name) -> None:
    with pytest.raises(InvalidImage):
        upload_image(_file(name), "bucket", "prefix")


def test_delete_image_ignores_foreign_urls() -> None:
    with patch("salonflow.storage.boto3") as mock_boto3:
        delete_image("bucket", "https://elsewhere.example.com/a.png")
        delete_image("bucket", None)

    mock_boto3.client.assert_not_called()


def test_delete_image_is_best_effort() -> None:
    with patch("salonflow.storage.boto3") as mock_boto3:
        mock_boto3.client.return_value.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject"
        )
        delete_image("bucket", "https://bucket.s3.amazonaws.com/salons/1/a.png")

    mock_boto3.client.return_value.delete_object.assert_called_once_with(Bucket="bucket", Key="salons/1/a.png")
