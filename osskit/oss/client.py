"""Клиент для работы с OSS"""

import base64
import hashlib
import logging
import os
import time
import xml.etree.ElementTree as ET
from datetime import datetime
from email.utils import formatdate, parsedate_to_datetime
from typing import BinaryIO, Optional, Union
from urllib.parse import quote, urlencode

from osskit.models.types import ObjectListing
from osskit.oss._signer import sign_request
from osskit.oss.errors import DecodeError, ServiceError
from osskit.oss.transport import HttpResponse, Transport, UrllibTransport

Payload = Union[bytes, BinaryIO, None]

# Сервис не принимает max-keys/max-uploads >= 1000
MAX_LIST_SIZE = 1000


def range_header(start: int, end: int) -> Optional[str]:
    """
    Значение заголовка Range для байтового диапазона.

    Отрицательная граница означает "не задана". Если не задана ни одна,
    возвращает None (весь объект). Отрицательный start прижимается к 0.
    """
    if start < 0 and end < 0:
        return None
    start = max(start, 0)
    if end >= 0:
        return f"bytes={start}-{end}"
    return f"bytes={start}-"


def parse_xml(body: bytes) -> ET.Element:
    """Разбирает XML тело ответа, убирая пространства имен из тегов"""
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise DecodeError(f"Некорректный XML в ответе: {e}", body) from e
    for element in root.iter():
        if isinstance(element.tag, str) and "}" in element.tag:
            element.tag = element.tag.split("}", 1)[1]
    return root


class ObjectMetadata:
    """Заголовки объекта из ответа на HEAD"""

    def __init__(self, headers: dict[str, str]):
        self._headers = {name.lower(): value for name, value in headers.items()}

    def get(self, name: str, default: str = "") -> str:
        return self._headers.get(name.lower(), default)

    @property
    def content_length(self) -> int:
        try:
            return int(self.get("Content-Length"))
        except ValueError:
            return 0

    @property
    def content_type(self) -> str:
        return self.get("Content-Type")

    @property
    def etag(self) -> str:
        return self.get("ETag")

    @property
    def date(self) -> Optional[datetime]:
        return self._parse_date("Date")

    @property
    def last_modified(self) -> Optional[datetime]:
        return self._parse_date("Last-Modified")

    def _parse_date(self, name: str) -> Optional[datetime]:
        value = self.get(name)
        if not value:
            return None
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None

    def __repr__(self) -> str:
        return f"ObjectMetadata({self._headers!r})"


class OssClient:
    """Клиент для работы с бакетом OSS"""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        region: str,
        bucket: str,
        endpoint_domain: str = "aliyuncs.com",
        scheme: str = "http",
        transport: Optional[Transport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Инициализация клиента OSS

        Args:
            key_id: AccessKeyId
            key_secret: AccessKeySecret
            region: Регион, например oss-cn-hangzhou
            bucket: Имя бакета
            endpoint_domain: Домен сервиса
            scheme: http или https
            transport: Исполнитель HTTP запросов (по умолчанию urllib)
            logger: Логгер клиента (по умолчанию логгер модуля)
        """
        self._key_id = key_id
        self._key_secret = key_secret
        self._region = region
        self._bucket = bucket
        self._host = f"{bucket}.{region}.{endpoint_domain}"
        self._base_url = f"{scheme}://{self._host}"
        self._transport: Transport = transport or UrllibTransport()
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def host(self) -> str:
        return self._host

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    # ------------------------------------------------------------------
    # Построение и выполнение запросов
    # ------------------------------------------------------------------

    def build_url(self, object_key: str, params: Optional[dict[str, list[str]]] = None) -> str:
        """URL запроса: путь ``/key`` и URL-кодированная строка запроса"""
        url = f"{self._base_url}/{quote(object_key, safe='/')}"
        if params:
            url = f"{url}?{urlencode(sorted(params.items()), doseq=True)}"
        return url

    def raw_request(
        self,
        method: str = "GET",
        object_key: str = "",
        params: Optional[dict[str, list[str]]] = None,
        headers: Optional[dict[str, list[str]]] = None,
        payload: Payload = None,
    ) -> HttpResponse:
        """
        Подписывает и выполняет запрос.

        Host и Date выставляются до подписи. Ответ со статусом вне 2xx
        превращается в ServiceError, тело при этом закрывается.

        Returns:
            Ответ с открытым телом; закрыть его должен вызывающий код
        """
        method = method or "GET"
        headers = {name: list(values) for name, values in (headers or {}).items()}
        params = {name: list(values) for name, values in (params or {}).items()}
        headers["Host"] = [self._host]
        headers["Date"] = [formatdate(time.time(), usegmt=True)]
        if payload is not None and not any(name.lower() == "content-type" for name in headers):
            # Content-Type запроса с телом входит в подпись
            headers["Content-Type"] = ["application/octet-stream"]

        sign_request(
            key_id=self._key_id,
            key_secret=self._key_secret,
            method=method,
            bucket=self._bucket,
            object_key=object_key,
            params=params,
            headers=headers,
        )

        url = self.build_url(object_key, params)
        wire_headers = {name: ",".join(values) for name, values in headers.items()}
        self._logger.debug(f"{method} {url}")
        response = self._transport.execute(method, url, wire_headers, payload)

        if not 200 <= response.status < 300:
            try:
                body = response.read()
            finally:
                response.close()
            error = ServiceError.from_response(response.status, response.reason, body)
            self._logger.debug(f"Ошибка сервиса: {error!r}")
            raise error
        return response

    def request(
        self,
        method: str = "GET",
        object_key: str = "",
        params: Optional[dict[str, list[str]]] = None,
        headers: Optional[dict[str, list[str]]] = None,
        payload: Payload = None,
    ) -> bytes:
        """Выполняет запрос, полностью вычитывает и закрывает тело ответа"""
        with self.raw_request(method, object_key, params, headers, payload) as response:
            return response.read()

    def request_xml(
        self,
        method: str = "GET",
        object_key: str = "",
        params: Optional[dict[str, list[str]]] = None,
        headers: Optional[dict[str, list[str]]] = None,
        payload: Payload = None,
    ) -> ET.Element:
        """Выполняет запрос и разбирает XML тело ответа"""
        body = self.request(method, object_key, params, headers, payload)
        return parse_xml(body)

    # ------------------------------------------------------------------
    # Операции над объектами
    # ------------------------------------------------------------------

    def put_object(
        self,
        object_key: str,
        contents: Payload,
        content_type: str,
        content_length: Optional[int] = None,
    ) -> None:
        """
        Загружает объект целиком.

        Args:
            object_key: Ключ объекта
            contents: Байты или открытый бинарный файл
            content_type: MIME тип объекта
            content_length: Размер для файлового потока; для bytes считается сам
        """
        if isinstance(contents, (bytes, bytearray)):
            content_length = len(contents)
        elif content_length is None:
            content_length = _stream_length(contents)
        headers = {
            "Content-Type": [content_type],
            "Content-Length": [str(content_length)],
        }
        self.request("PUT", object_key, headers=headers, payload=contents)
        self._logger.info(f"Объект загружен: oss://{self._bucket}/{object_key}")

    def get_object_as_stream(
        self, object_key: str, start: int = -1, end: int = -1
    ) -> tuple[HttpResponse, int]:
        """
        Открывает объект (или его диапазон) на чтение.

        Отрицательные start и end означают весь объект, ожидается 200.
        Для диапазона ожидается 206, но 200 (сервер вернул объект целиком)
        тоже не считается ошибкой.

        Returns:
            (ответ с открытым телом, HTTP статус)
        """
        headers: dict[str, list[str]] = {}
        value = range_header(start, end)
        if value is not None:
            headers["Range"] = [value]
        response = self.raw_request("GET", object_key, headers=headers)
        expected = (200,) if value is None else (200, 206)
        if response.status not in expected:
            response.close()
            raise ServiceError(
                status_code=response.status,
                message=f"Неожиданный статус {response.status} {response.reason} для GET {object_key}",
                code="UnexpectedStatus",
                bucket_name=self._bucket,
            )
        return response, response.status

    def get_object_range(
        self, object_key: str, start: int = -1, end: int = -1
    ) -> tuple[bytes, int]:
        """Читает диапазон байт объекта. Returns: (байты, HTTP статус)"""
        response, status = self.get_object_as_stream(object_key, start, end)
        with response:
            return response.read(), status

    def get_object(self, object_key: str) -> bytes:
        """Читает объект целиком"""
        data, _ = self.get_object_range(object_key, -1, -1)
        return data

    get_object_as_bytes = get_object

    def get_object_metadata(self, object_key: str) -> ObjectMetadata:
        """Запрашивает метаданные объекта (HEAD) без тела"""
        with self.raw_request("HEAD", object_key) as response:
            return ObjectMetadata(response.headers)

    def list_files(
        self,
        prefix: str = "",
        delimiter: str = "",
        marker: str = "",
        max_keys: int = -1,
    ) -> ObjectListing:
        """
        Одна страница листинга объектов

        Args:
            prefix: Префикс ключей
            delimiter: Разделитель для группировки в common prefixes
            marker: Маркер продолжения из предыдущей страницы
            max_keys: Размер страницы; передается, только если 0 < max_keys < 1000

        Returns:
            Ключи, общие префиксы и маркер следующей страницы (None, если страница последняя)
        """
        params: dict[str, list[str]] = {}
        if prefix:
            params["prefix"] = [prefix]
        if delimiter:
            params["delimiter"] = [delimiter]
        if marker:
            params["marker"] = [marker]
        if 0 < max_keys < MAX_LIST_SIZE:
            params["max-keys"] = [str(max_keys)]

        root = self.request_xml("GET", params=params)
        keys = [content.findtext("Key", "") for content in root.findall("Contents")]
        prefixes = [
            prefix_el.text or ""
            for group in root.findall("CommonPrefixes")
            for prefix_el in group.findall("Prefix")
        ]
        next_marker = None
        if is_truncated(root):
            next_marker = root.findtext("NextMarker") or None
        return {"keys": keys, "common_prefixes": prefixes, "next_marker": next_marker}

    def delete_objects(self, *object_keys: str) -> None:
        """Удаляет несколько объектов одним запросом (quiet режим)"""
        if not object_keys:
            return
        root = ET.Element("Delete")
        ET.SubElement(root, "Quiet").text = "true"
        for object_key in object_keys:
            obj = ET.SubElement(root, "Object")
            ET.SubElement(obj, "Key").text = object_key
        data = ET.tostring(root, encoding="utf-8", xml_declaration=False)
        headers = {
            "Content-Type": ["application/xml"],
            "Content-MD5": [base64.b64encode(hashlib.md5(data).digest()).decode("ascii")],
            "Content-Length": [str(len(data))],
        }
        self.request("POST", params={"delete": [""]}, headers=headers, payload=data)
        self._logger.info(f"Удалено объектов: {len(object_keys)}")

    def presign_url(self, object_key: str, expires_in: int = 3600, method: str = "GET") -> str:
        """
        Генерирует подписанную ссылку на объект

        Args:
            object_key: Ключ объекта
            expires_in: Время жизни ссылки в секундах
            method: HTTP метод, для которого действует ссылка

        Returns:
            URL с параметрами OSSAccessKeyId, Expires и Signature
        """
        expires = str(int(time.time()) + expires_in)
        headers: dict[str, list[str]] = {}
        params = {"Expires": [expires]}
        authorization = sign_request(
            key_id=self._key_id,
            key_secret=self._key_secret,
            method=method,
            bucket=self._bucket,
            object_key=object_key,
            params=params,
            headers=headers,
        )
        signature = authorization.rsplit(":", 1)[1]
        params["OSSAccessKeyId"] = [self._key_id]
        params["Signature"] = [signature]
        url = self.build_url(object_key, params)
        self._logger.debug(f"Сгенерирована подписанная ссылка для {object_key}")
        return url

    def close(self) -> None:
        """Закрывает транспорт, если он это поддерживает"""
        close = getattr(self._transport, "close", None)
        if callable(close):
            close()
        self._logger.debug("OSS клиент закрыт")


def is_truncated(root: ET.Element) -> bool:
    return (root.findtext("IsTruncated") or "").strip().lower() == "true"


def _stream_length(stream: Payload) -> int:
    """Размер остатка файлового потока от текущей позиции"""
    if stream is None:
        return 0
    try:
        return os.fstat(stream.fileno()).st_size - stream.tell()
    except (AttributeError, OSError):
        position = stream.tell()
        stream.seek(0, os.SEEK_END)
        size = stream.tell() - position
        stream.seek(position)
        return size
