import logging

import pytest

from osskit.oss import MultipartUploader, ObjectCopier, OssClient, UploadSweeper
from tests.fake_oss import FakeOss

BUCKET = "test-bucket"
REGION = "oss-cn-hangzhou"
KEY_ID = "test-key-id"
KEY_SECRET = "test-key-secret"


@pytest.fixture
def fake_oss():
    """In-memory сервис OSS"""
    return FakeOss(BUCKET, KEY_ID, KEY_SECRET, f"{BUCKET}.{REGION}.aliyuncs.com")


@pytest.fixture
def client(fake_oss):
    """OssClient поверх имитации сервиса"""
    return OssClient(
        key_id=KEY_ID,
        key_secret=KEY_SECRET,
        region=REGION,
        bucket=BUCKET,
        transport=fake_oss,
        logger=logging.getLogger("osskit.tests"),
    )


@pytest.fixture
def uploader(client):
    return MultipartUploader(client)


@pytest.fixture
def copier(uploader):
    return ObjectCopier(uploader)


@pytest.fixture
def sweeper(uploader):
    return UploadSweeper(uploader, page_size=2)


@pytest.fixture
def contents():
    """1 000 000 байт, не повторяющихся с коротким периодом"""
    return bytes((i * 7 + i // 251) % 256 for i in range(1_000_000))
