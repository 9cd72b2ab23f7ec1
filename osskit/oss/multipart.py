"""Multipart загрузки: контекст загрузки и операции над ним"""

import enum
import re
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Tuple, Union

from osskit.oss.client import MAX_LIST_SIZE, OssClient, is_truncated, parse_xml, range_header
from osskit.oss.errors import DecodeError, OssError, UploadStateError

MAX_PART_NUMBER = 10000
MIN_PART_SIZE = 100 * 1024

_CONTENT_RANGE_RE = re.compile(r"bytes (\d+)-(\d+)/(\d+)")


class UploadState(enum.Enum):
    INITIATED = "initiated"
    PARTS_PENDING = "parts_pending"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Part:
    """Загруженная часть: номер (с 1) и ETag, который вернул сервис"""

    part_number: int
    etag: str


@dataclass(frozen=True)
class ListUploadsMarker:
    """Маркер продолжения листинга загрузок; передается сервису без изменений"""

    key: str = ""
    upload_id: str = ""


@dataclass
class UploadContext:
    """
    Состояние одной multipart загрузки.

    Части хранятся по номеру: повторная загрузка части с тем же номером
    заменяет ETag, а не добавляет дубль. Добавление частей защищено блокировкой,
    поэтому части одной загрузки можно грузить из нескольких потоков.
    """

    key: str
    upload_id: str
    state: UploadState = UploadState.INITIATED
    _parts: Dict[int, Part] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def parts(self) -> List[Part]:
        """Части, отсортированные по номеру"""
        with self._lock:
            return [self._parts[number] for number in sorted(self._parts)]

    def add_part(self, part_number: int, etag: str) -> None:
        with self._lock:
            self._parts[part_number] = Part(part_number, etag)
            if self.state is UploadState.INITIATED:
                self.state = UploadState.PARTS_PENDING

    @property
    def finished(self) -> bool:
        return self.state in (UploadState.COMPLETED, UploadState.ABORTED)


def complete_body(parts: List[Part]) -> bytes:
    """XML документ CompleteMultipartUpload; части по возрастанию номера"""
    root = ET.Element("CompleteMultipartUpload")
    for part in sorted(parts, key=lambda p: p.part_number):
        part_el = ET.SubElement(root, "Part")
        ET.SubElement(part_el, "PartNumber").text = str(part.part_number)
        ET.SubElement(part_el, "ETag").text = part.etag
    return ET.tostring(root, encoding="utf-8")


def remaining_from_content_range(content_range: str) -> int:
    """
    Сколько байт источника осталось после скопированного диапазона.

    ``bytes <start>-<end>/<total>`` -> ``total - end - 1``; без заголовка 0.
    """
    match = _CONTENT_RANGE_RE.search(content_range or "")
    if not match:
        return 0
    read_end, total = int(match.group(2)), int(match.group(3))
    return total - read_end - 1


def _check_part_number(part_number: int) -> None:
    if not 1 <= part_number <= MAX_PART_NUMBER:
        raise ValueError(
            f"Номер части должен быть в диапазоне 1..{MAX_PART_NUMBER}, получено {part_number}"
        )


def _check_open(context: UploadContext) -> None:
    if context.finished:
        raise UploadStateError(
            f"Загрузка {context.upload_id} ({context.key}) уже {context.state.value}"
        )


class MultipartUploader:
    """Операции multipart загрузки поверх OssClient. Повторов не делает."""

    def __init__(self, client: OssClient):
        self._client = client
        self._logger = client.logger

    @property
    def client(self) -> OssClient:
        return self._client

    def init(self, object_key: str, content_type: str) -> UploadContext:
        """
        Начинает multipart загрузку

        Args:
            object_key: Ключ итогового объекта
            content_type: MIME тип итогового объекта

        Returns:
            Новый контекст без частей
        """
        if not object_key:
            raise ValueError("Ключ объекта не может быть пустым")
        root = self._client.request_xml(
            "POST",
            object_key,
            params={"uploads": [""]},
            headers={"Content-Type": [content_type]},
        )
        upload_id = (root.findtext("UploadId") or "").strip()
        if not upload_id:
            raise DecodeError("В ответе нет UploadId", ET.tostring(root))
        self._logger.debug(f"Начата загрузка {upload_id} для {object_key}")
        return UploadContext(key=object_key, upload_id=upload_id)

    def upload_part(
        self,
        context: UploadContext,
        contents: Union[bytes, BinaryIO],
        part_number: int,
        content_length: Optional[int] = None,
    ) -> Part:
        """
        Загружает часть и записывает ее ETag в контекст

        Args:
            context: Контекст загрузки
            contents: Данные части (байты или поток)
            part_number: Номер части, начиная с 1
            content_length: Размер части, если contents это поток

        Returns:
            Записанная часть
        """
        _check_part_number(part_number)
        _check_open(context)
        if isinstance(contents, (bytes, bytearray)):
            content_length = len(contents)
        headers = {}
        if content_length is not None:
            headers["Content-Length"] = [str(content_length)]
        with self._client.raw_request(
            "PUT",
            context.key,
            params=self._part_params(context, part_number),
            headers=headers,
            payload=contents,
        ) as response:
            etag = response.header("ETag")
        context.add_part(part_number, etag)
        self._logger.debug(f"Часть {part_number} загрузки {context.upload_id}: {etag}")
        return Part(part_number, etag)

    def upload_part_copy(
        self,
        context: UploadContext,
        source_bucket: str,
        source_object: str,
        start: int,
        end: int,
        part_number: int,
    ) -> int:
        """
        Копирует диапазон существующего объекта в часть загрузки на стороне сервиса

        Args:
            context: Контекст загрузки
            source_bucket: Бакет источника (пусто — бакет клиента)
            source_object: Ключ источника
            start: Начало диапазона (отрицательное — с нуля)
            end: Конец диапазона включительно (отрицательный — до конца)
            part_number: Номер части

        Returns:
            Сколько байт источника осталось после скопированного диапазона
        """
        _check_part_number(part_number)
        _check_open(context)
        source_bucket = source_bucket or self._client.bucket
        headers = {"x-oss-copy-source": [f"/{source_bucket}/{source_object}"]}
        value = range_header(start, end)
        if value is not None:
            headers["x-oss-copy-source-range"] = [value]

        with self._client.raw_request(
            "PUT",
            context.key,
            params=self._part_params(context, part_number),
            headers=headers,
        ) as response:
            body = response.read()
            content_range = response.header("Content-Range")

        root = parse_xml(body)
        etag = (root.findtext("ETag") or "").strip()
        if not etag:
            raise DecodeError("В ответе на копирование части нет ETag", body)

        remaining = remaining_from_content_range(content_range)
        context.add_part(part_number, etag)
        self._logger.debug(
            f"Часть {part_number} скопирована из /{source_bucket}/{source_object}, "
            f"осталось {remaining} байт"
        )
        return remaining

    def list_uploads(
        self,
        prefix: str = "",
        marker: Optional[ListUploadsMarker] = None,
        max_uploads: int = -1,
    ) -> Tuple[List[UploadContext], Optional[ListUploadsMarker]]:
        """
        Одна страница незавершенных загрузок

        Returns:
            (контексты без частей, маркер следующей страницы или None)
        """
        params = {"uploads": [""]}
        if prefix:
            params["prefix"] = [prefix]
        if marker is not None:
            if marker.key:
                params["key-marker"] = [marker.key]
            if marker.upload_id:
                params["upload-id-marker"] = [marker.upload_id]
        if 0 < max_uploads < MAX_LIST_SIZE:
            params["max-uploads"] = [str(max_uploads)]

        root = self._client.request_xml("GET", params=params)
        contexts = [
            UploadContext(
                key=upload.findtext("Key", ""), upload_id=upload.findtext("UploadId", "")
            )
            for upload in root.findall("Upload")
        ]
        next_marker = None
        if is_truncated(root):
            next_marker = ListUploadsMarker(
                key=root.findtext("NextKeyMarker") or "",
                upload_id=root.findtext("NextUploadIdMarker") or "",
            )
        return contexts, next_marker

    def fetch_parts(self, context: UploadContext) -> UploadContext:
        """Подтягивает с сервиса уже загруженные части в контекст (все страницы)"""
        part_marker = ""
        while True:
            params = {"uploadId": [context.upload_id]}
            if part_marker:
                params["part-number-marker"] = [part_marker]
            root = self._client.request_xml("GET", context.key, params=params)
            for part in root.findall("Part"):
                try:
                    number = int(part.findtext("PartNumber", ""))
                except ValueError as e:
                    raise DecodeError(f"Некорректный PartNumber: {e}", ET.tostring(part)) from e
                context.add_part(number, part.findtext("ETag", ""))
            next_marker = root.findtext("NextPartNumberMarker") or ""
            if not is_truncated(root) or not next_marker or next_marker == part_marker:
                return context
            part_marker = next_marker

    def complete(self, context: UploadContext) -> None:
        """
        Завершает загрузку: отправляет список частей по возрастанию номера.

        При ошибке контекст остается незавершенным; повтор или отмена на вызывающем коде.
        """
        _check_open(context)
        data = complete_body(context.parts)
        self._client.request(
            "POST",
            context.key,
            params={"uploadId": [context.upload_id]},
            headers={"Content-Type": ["application/xml"], "Content-Length": [str(len(data))]},
            payload=data,
        )
        context.state = UploadState.COMPLETED
        self._logger.info(
            f"Загрузка завершена: oss://{self._client.bucket}/{context.key} "
            f"({len(context.parts)} частей)"
        )

    def abort(self, context: UploadContext) -> None:
        """Отменяет загрузку на стороне сервиса"""
        self._client.request(
            "DELETE", context.key, params={"uploadId": [context.upload_id]}
        )
        if context.state is not UploadState.COMPLETED:
            context.state = UploadState.ABORTED
        self._logger.info(f"Загрузка {context.upload_id} ({context.key}) отменена")

    def abort_quietly(self, context: UploadContext) -> bool:
        """Отмена для путей очистки: ошибка логируется, но не пробрасывается"""
        try:
            self.abort(context)
            return True
        except OssError as e:
            self._logger.warning(f"Не удалось отменить загрузку {context.upload_id}: {e}")
            return False

    def upload_file(
        self,
        local_path: Union[str, Path],
        object_key: Optional[str] = None,
        content_type: str = "application/octet-stream",
        part_size: int = 5 * 1024 * 1024,
    ) -> str:
        """
        Загружает локальный файл.

        Файл не больше одной части уходит одним PUT, иначе читается частями
        и грузится multipart загрузкой. При любой ошибке загрузка отменяется.

        Returns:
            Ключ загруженного объекта
        """
        path = Path(local_path)
        if not path.is_file():
            raise FileNotFoundError(f"Файл не найден: {local_path}")
        key = object_key if object_key is not None else path.name
        part_size = max(part_size, MIN_PART_SIZE)
        size = path.stat().st_size

        with path.open("rb") as fh:
            if size <= part_size:
                self._client.put_object(key, fh, content_type, content_length=size)
                return key

            context = self.init(key, content_type)
            try:
                part_number = 1
                while True:
                    chunk = fh.read(part_size)
                    if not chunk:
                        break
                    self.upload_part(context, chunk, part_number)
                    part_number += 1
                self.complete(context)
            except (OssError, OSError):
                self.abort_quietly(context)
                raise

        self._logger.info(f"Файл загружен: {local_path} -> oss://{self._client.bucket}/{key}")
        return key

    @staticmethod
    def _part_params(context: UploadContext, part_number: int) -> dict[str, list[str]]:
        return {"partNumber": [str(part_number)], "uploadId": [context.upload_id]}
