"""In-memory имитация сервиса OSS для тестов.

Реализует протокол Transport: принимает подписанный запрос, проверяет подпись
тем же алгоритмом и отвечает так же, как сервис (XML, Range, Content-Range).
"""

from __future__ import annotations

import base64
import hashlib
import io
import itertools
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Any
from urllib.parse import parse_qs, unquote, urlsplit

from osskit.oss._signer import canonical_string, compute_signature
from osskit.oss.transport import HttpResponse

NS = "http://doc.oss-cn-hangzhou.aliyuncs.com"
_RANGE_RE = re.compile(r"bytes=(\d+)-(\d*)$")


def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest().upper()}"'


def _xml(root: ET.Element) -> bytes:
    return b'<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="utf-8")


def _sub(parent: ET.Element, tag: str, text: Any) -> ET.Element:
    el = ET.SubElement(parent, tag)
    el.text = str(text)
    return el


@dataclass
class StoredObject:
    data: bytes
    content_type: str = ""
    etag: str = ""


@dataclass
class Upload:
    key: str
    content_type: str
    parts: dict[int, tuple[bytes, str]] = field(default_factory=dict)


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: bytes

    @property
    def params(self) -> dict[str, list[str]]:
        return parse_qs(urlsplit(self.url).query, keep_blank_values=True)


class FakeOss:
    """Имитация одного бакета OSS"""

    def __init__(self, bucket: str, key_id: str, key_secret: str, host: str):
        self.bucket = bucket
        self.key_id = key_id
        self.key_secret = key_secret
        self.host = host
        self.objects: dict[str, StoredObject] = {}
        self.uploads: dict[str, Upload] = {}
        self.requests: list[RecordedRequest] = []
        self.opened: list[HttpResponse] = []
        self.max_parts = 1000
        self.min_part_size = 0
        self.ignore_ranges = False
        # (метод, имя подресурса или None) -> статус, который вернуть вместо обработки
        self.failures: dict[tuple[str, str | None], int] = {}
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------

    def execute(self, method, url, headers, body=None) -> HttpResponse:
        if body is not None and hasattr(body, "read"):
            body = body.read()
        body = bytes(body or b"")
        self.requests.append(RecordedRequest(method, url, dict(headers), body))

        parts = urlsplit(url)
        key = unquote(parts.path[1:])
        params = parse_qs(parts.query, keep_blank_values=True)
        multi_headers = {name: [value] for name, value in headers.items()}

        if not self._authorized(method, key, params, multi_headers):
            return self._error(403, "SignatureDoesNotMatch", "The request signature does not match")

        for (fail_method, sub_resource), status in self.failures.items():
            if fail_method == method and (sub_resource is None or sub_resource in params):
                return self._error(status, "InternalError", "Injected failure")

        response = self._dispatch(method, key, params, headers, body)
        self.opened.append(response)
        return response

    def _authorized(self, method, key, params, headers) -> bool:
        if "Signature" in params:
            signed = {k: v for k, v in params.items() if k not in ("Signature", "OSSAccessKeyId")}
            payload = canonical_string(
                method=method, bucket=self.bucket, object_key=key, params=signed, headers={}
            )
            return params["Signature"][0] == compute_signature(payload, self.key_secret)

        if headers.get("Host") != [self.host]:
            return False
        payload = canonical_string(
            method=method, bucket=self.bucket, object_key=key, params=params, headers=headers
        )
        expected = f"OSS {self.key_id}:{compute_signature(payload, self.key_secret)}"
        return headers.get("Authorization") == [expected]

    def _dispatch(self, method, key, params, headers, body) -> HttpResponse:
        if not key:
            if method == "GET" and "uploads" in params:
                return self._list_uploads(params)
            if method == "GET":
                return self._list_objects(params)
            if method == "POST" and "delete" in params:
                return self._delete_objects(headers, body)
        elif "uploads" in params and method == "POST":
            return self._init_upload(key, headers)
        elif "uploadId" in params:
            upload_id = params["uploadId"][0]
            upload = self.uploads.get(upload_id)
            if upload is None or upload.key != key:
                return self._error(404, "NoSuchUpload", "The specified upload does not exist.")
            if method == "PUT":
                return self._upload_part(upload, params, headers, body)
            if method == "GET":
                return self._list_parts(upload_id, upload, params)
            if method == "POST":
                return self._complete(upload_id, upload, body)
            if method == "DELETE":
                del self.uploads[upload_id]
                return self._ok(204)
        elif method == "PUT":
            self.objects[key] = StoredObject(
                body, headers.get("Content-Type", ""), _etag(body)
            )
            return self._ok(200, {"ETag": self.objects[key].etag})
        elif method in ("GET", "HEAD"):
            return self._get_object(method, key, headers)
        return self._error(405, "MethodNotAllowed", "The specified method is not allowed")

    # ------------------------------------------------------------------

    def _get_object(self, method, key, headers) -> HttpResponse:
        obj = self.objects.get(key)
        if obj is None:
            if method == "HEAD":
                return self._ok(404)
            return self._error(404, "NoSuchKey", "The specified key does not exist.")

        data, status, extra = obj.data, 200, {}
        window = self._range(headers.get("Range"), len(obj.data))
        if window is not None and not self.ignore_ranges:
            start, end = window
            data, status = obj.data[start : end + 1], 206
            extra["Content-Range"] = f"bytes {start}-{end}/{len(obj.data)}"

        response_headers = {
            "Content-Length": str(len(data)),
            "Content-Type": obj.content_type,
            "ETag": obj.etag,
            "Last-Modified": "Thu, 25 Jun 2015 06:29:40 GMT",
            "Date": formatdate(usegmt=True),
            **extra,
        }
        return self._ok(status, response_headers, b"" if method == "HEAD" else data)

    @staticmethod
    def _range(value: str | None, size: int) -> tuple[int, int] | None:
        """Диапазон из заголовка Range; некорректный игнорируется, как у сервиса"""
        if not value:
            return None
        match = _RANGE_RE.match(value)
        if not match:
            return None
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) else size - 1
        end = min(end, size - 1)
        if start > end:
            return None
        return start, end

    def _init_upload(self, key, headers) -> HttpResponse:
        upload_id = f"UPLOAD{next(self._ids):06d}"
        self.uploads[upload_id] = Upload(key, headers.get("Content-Type", ""))
        root = ET.Element("InitiateMultipartUploadResult", xmlns=NS)
        _sub(root, "Bucket", self.bucket)
        _sub(root, "Key", key)
        _sub(root, "UploadId", upload_id)
        return self._ok(200, {"Content-Type": "application/xml"}, _xml(root))

    def _upload_part(self, upload, params, headers, body) -> HttpResponse:
        part_number = int(params["partNumber"][0])
        source = headers.get("x-oss-copy-source")
        if source is None:
            etag = _etag(body)
            upload.parts[part_number] = (body, etag)
            return self._ok(200, {"ETag": etag})

        bucket, _, source_key = source.lstrip("/").partition("/")
        obj = self.objects.get(source_key) if bucket == self.bucket else None
        if obj is None:
            return self._error(404, "NoSuchKey", "The specified key does not exist.")
        window = self._range(headers.get("x-oss-copy-source-range"), len(obj.data))
        if window is None:
            window = (0, len(obj.data) - 1)
        start, end = window
        data = obj.data[start : end + 1]
        etag = _etag(data)
        upload.parts[part_number] = (data, etag)

        root = ET.Element("CopyPartResult")
        _sub(root, "LastModified", "2015-06-25T06:29:40.000Z")
        _sub(root, "ETag", etag)
        response_headers = {"Content-Type": "application/xml"}
        if obj.data:
            response_headers["Content-Range"] = f"bytes {start}-{end}/{len(obj.data)}"
        return self._ok(200, response_headers, _xml(root))

    def _list_parts(self, upload_id, upload, params) -> HttpResponse:
        marker = int(params.get("part-number-marker", ["0"])[0] or 0)
        numbers = [n for n in sorted(upload.parts) if n > marker]
        page, rest = numbers[: self.max_parts], numbers[self.max_parts :]
        root = ET.Element("ListPartsResult", xmlns=NS)
        _sub(root, "UploadId", upload_id)
        _sub(root, "IsTruncated", "true" if rest else "false")
        if page:
            _sub(root, "NextPartNumberMarker", page[-1])
        for number in page:
            data, etag = upload.parts[number]
            part = ET.SubElement(root, "Part")
            _sub(part, "PartNumber", number)
            _sub(part, "ETag", etag)
            _sub(part, "Size", len(data))
        return self._ok(200, {"Content-Type": "application/xml"}, _xml(root))

    def _complete(self, upload_id, upload, body) -> HttpResponse:
        try:
            root = ET.fromstring(body)
        except ET.ParseError:
            return self._error(400, "MalformedXML", "The XML you provided was not well-formed")
        requested = [
            (int(part.findtext("PartNumber")), part.findtext("ETag"))
            for part in root.findall("Part")
        ]
        numbers = [number for number, _ in requested]
        if not requested:
            return self._error(400, "MalformedXML", "No parts")
        if numbers != sorted(numbers) or len(set(numbers)) != len(numbers):
            return self._error(400, "InvalidPartOrder", "The list of parts was not in ascending order.")
        chunks = []
        for index, (number, etag) in enumerate(requested):
            stored = upload.parts.get(number)
            if stored is None or stored[1] != etag:
                return self._error(400, "InvalidPart", "One or more of the specified parts could not be found.")
            if index < len(requested) - 1 and len(stored[0]) < self.min_part_size:
                return self._error(400, "EntityTooSmall", "Your proposed upload is smaller than the minimum allowed size.")
            chunks.append(stored[0])
        data = b"".join(chunks)
        self.objects[upload.key] = StoredObject(data, upload.content_type, _etag(data))
        del self.uploads[upload_id]

        result = ET.Element("CompleteMultipartUploadResult", xmlns=NS)
        _sub(result, "Key", upload.key)
        _sub(result, "ETag", self.objects[upload.key].etag)
        return self._ok(200, {"Content-Type": "application/xml"}, _xml(result))

    def _list_uploads(self, params) -> HttpResponse:
        prefix = params.get("prefix", [""])[0]
        key_marker = params.get("key-marker", [""])[0]
        id_marker = params.get("upload-id-marker", [""])[0]
        limit = int(params.get("max-uploads", ["1000"])[0])

        entries = sorted(
            (upload.key, upload_id)
            for upload_id, upload in self.uploads.items()
            if upload.key.startswith(prefix)
        )
        if key_marker:
            entries = [
                (k, u) for k, u in entries if k > key_marker or (k == key_marker and u > id_marker)
            ]
        page, rest = entries[:limit], entries[limit:]

        root = ET.Element("ListMultipartUploadsResult", xmlns=NS)
        _sub(root, "Bucket", self.bucket)
        _sub(root, "IsTruncated", "true" if rest else "false")
        if page:
            _sub(root, "NextKeyMarker", page[-1][0])
            _sub(root, "NextUploadIdMarker", page[-1][1])
        for key, upload_id in page:
            upload = ET.SubElement(root, "Upload")
            _sub(upload, "Key", key)
            _sub(upload, "UploadId", upload_id)
        return self._ok(200, {"Content-Type": "application/xml"}, _xml(root))

    def _list_objects(self, params) -> HttpResponse:
        prefix = params.get("prefix", [""])[0]
        delimiter = params.get("delimiter", [""])[0]
        marker = params.get("marker", [""])[0]
        limit = int(params.get("max-keys", ["100"])[0])

        keys: list[str] = []
        prefixes: list[str] = []
        for key in sorted(self.objects):
            if not key.startswith(prefix) or key <= marker:
                continue
            if delimiter and delimiter in key[len(prefix) :]:
                common = key[: key.index(delimiter, len(prefix)) + len(delimiter)]
                if common not in prefixes and common > marker:
                    prefixes.append(common)
                continue
            keys.append(key)

        entries = sorted([(k, "key") for k in keys] + [(p, "prefix") for p in prefixes])
        page, rest = entries[:limit], entries[limit:]

        root = ET.Element("ListBucketResult", xmlns=NS)
        _sub(root, "Name", self.bucket)
        _sub(root, "IsTruncated", "true" if rest else "false")
        if rest:
            _sub(root, "NextMarker", page[-1][0])
        for name, kind in page:
            if kind == "key":
                contents = ET.SubElement(root, "Contents")
                _sub(contents, "Key", name)
                _sub(contents, "Size", len(self.objects[name].data))
            else:
                group = ET.SubElement(root, "CommonPrefixes")
                _sub(group, "Prefix", name)
        return self._ok(200, {"Content-Type": "application/xml"}, _xml(root))

    def _delete_objects(self, headers, body) -> HttpResponse:
        expected_md5 = base64.b64encode(hashlib.md5(body).digest()).decode("ascii")
        if headers.get("Content-MD5") != expected_md5:
            return self._error(400, "InvalidDigest", "The Content-MD5 you specified was invalid")
        root = ET.fromstring(body)
        for obj in root.findall("Object"):
            self.objects.pop(obj.findtext("Key"), None)
        return self._ok(200, {"Content-Type": "application/xml"}, _xml(ET.Element("DeleteResult")))

    # ------------------------------------------------------------------

    @staticmethod
    def _ok(status: int, headers: dict[str, str] | None = None, body: bytes = b"") -> HttpResponse:
        reasons = {200: "OK", 204: "No Content", 206: "Partial Content", 404: "Not Found"}
        return HttpResponse(status, reasons.get(status, ""), headers or {}, io.BytesIO(body))

    def _error(self, status: int, code: str, message: str) -> HttpResponse:
        root = ET.Element("Error")
        _sub(root, "Code", code)
        _sub(root, "Message", message)
        _sub(root, "BucketName", self.bucket)
        _sub(root, "RequestId", "5C3D9175B6FC201293AD4890")
        _sub(root, "HostId", self.host)
        response = HttpResponse(status, "Error", {"Content-Type": "application/xml"}, io.BytesIO(_xml(root)))
        self.opened.append(response)
        return response
