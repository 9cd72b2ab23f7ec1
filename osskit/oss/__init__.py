"""Модуль для работы с OSS"""

from osskit.oss.client import ObjectMetadata, OssClient
from osskit.oss.copier import ObjectCopier
from osskit.oss.errors import (
    DecodeError,
    OssError,
    ServiceError,
    TransportError,
    UploadStateError,
)
from osskit.oss.multipart import (
    ListUploadsMarker,
    MultipartUploader,
    Part,
    UploadContext,
    UploadState,
)
from osskit.oss.sweeper import UploadSweeper
from osskit.oss.transport import HttpResponse, Transport, UrllibTransport

__all__ = [
    "DecodeError",
    "HttpResponse",
    "ListUploadsMarker",
    "MultipartUploader",
    "ObjectCopier",
    "ObjectMetadata",
    "OssClient",
    "OssError",
    "Part",
    "ServiceError",
    "Transport",
    "TransportError",
    "UploadContext",
    "UploadState",
    "UploadStateError",
    "UploadSweeper",
    "UrllibTransport",
]
