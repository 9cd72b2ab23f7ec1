"""Ошибки клиента OSS"""

import xml.etree.ElementTree as ET


class OssError(Exception):
    """Базовая ошибка клиента OSS"""


class TransportError(OssError):
    """Сбой соединения: DNS, таймаут, обрыв. Исходное исключение в ``__cause__``."""


class DecodeError(OssError):
    """Тело ответа не удалось разобрать как ожидаемый XML документ"""

    def __init__(self, message: str, body: bytes = b""):
        super().__init__(message)
        self.body = body[:512]


class ServiceError(OssError):
    """Ответ сервиса со статусом вне диапазона 2xx"""

    NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchUpload", "NoSuchBucket"})

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str = "",
        bucket_name: str = "",
        request_id: str = "",
        host_id: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.bucket_name = bucket_name
        self.request_id = request_id
        self.host_id = host_id

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"ServiceError(status_code={self.status_code!r}, code={self.code!r}, "
            f"message={self.message!r}, request_id={self.request_id!r})"
        )

    def is_not_found(self) -> bool:
        return self.status_code == 404 or self.code in self.NOT_FOUND_CODES

    @classmethod
    def from_response(cls, status_code: int, reason: str, body: bytes) -> "ServiceError":
        """
        Собирает ошибку из XML документа ``<Error>`` в теле ответа

        Если тело пустое или не разбирается, сообщением становится строка статуса HTTP.
        """
        fields: dict[str, str] = {}
        if body:
            try:
                root = ET.fromstring(body)
            except ET.ParseError:
                root = None
            if root is not None:
                for name in ("Code", "Message", "BucketName", "RequestId", "HostId"):
                    fields[name] = (root.findtext(name) or "").strip()

        message = fields.get("Message") or f"{status_code} {reason}".strip()
        return cls(
            status_code=status_code,
            message=message,
            code=fields.get("Code", ""),
            bucket_name=fields.get("BucketName", ""),
            request_id=fields.get("RequestId", ""),
            host_id=fields.get("HostId", ""),
        )


class UploadStateError(OssError):
    """Операция недопустима: multipart загрузка уже завершена или отменена"""
