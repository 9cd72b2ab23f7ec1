"""Очистка незавершенных multipart загрузок"""

from typing import Iterator, List, Optional, Tuple

from osskit.models.types import SweepReport
from osskit.oss.errors import OssError, ServiceError, TransportError
from osskit.oss.multipart import ListUploadsMarker, MultipartUploader, UploadContext
from osskit.utils.retry import retry


def is_transient(error: OssError) -> bool:
    """Сбой соединения или 5xx от сервиса; 4xx не повторяется"""
    if isinstance(error, ServiceError):
        return error.status_code >= 500
    return isinstance(error, TransportError)


class UploadSweeper:
    """Находит незавершенные загрузки в бакете и отменяет их"""

    def __init__(self, uploader: MultipartUploader, page_size: int = -1):
        """
        Инициализация

        Args:
            uploader: Операции multipart загрузки
            page_size: Размер страницы листинга (по умолчанию решает сервис)
        """
        self._uploader = uploader
        self._page_size = page_size
        self._logger = uploader.client.logger

    @retry(
        max_attempts=3,
        delay=1.0,
        backoff=2.0,
        exceptions=(TransportError, ServiceError),
        should_retry=is_transient,
    )
    def _list_page(
        self, prefix: str, marker: Optional[ListUploadsMarker]
    ) -> Tuple[List[UploadContext], Optional[ListUploadsMarker]]:
        return self._uploader.list_uploads(prefix, marker, self._page_size)

    def iter_uploads(self, prefix: str = "") -> Iterator[UploadContext]:
        """Все незавершенные загрузки с префиксом, по всем страницам"""
        marker: Optional[ListUploadsMarker] = None
        while True:
            contexts, marker = self._list_page(prefix, marker)
            yield from contexts
            if marker is None:
                return

    def abort_all(self, prefix: str = "") -> SweepReport:
        """
        Отменяет все незавершенные загрузки с префиксом

        Ошибки отмены отдельных загрузок логируются и попадают в отчет.
        """
        # Листинг целиком до отмены, чтобы не сбить маркеры страниц
        contexts = list(self.iter_uploads(prefix))
        report: SweepReport = {"found": len(contexts), "aborted": 0, "failed": []}
        for context in contexts:
            if self._uploader.abort_quietly(context):
                report["aborted"] += 1
            else:
                report["failed"].append(context.upload_id)

        self._logger.info(
            f"Очистка загрузок с префиксом {prefix!r}: найдено {report['found']}, "
            f"отменено {report['aborted']}"
        )
        return report
