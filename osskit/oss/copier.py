"""Копирование больших объектов частями на стороне сервиса"""

from osskit.oss.errors import OssError
from osskit.oss.multipart import MIN_PART_SIZE, MultipartUploader


class ObjectCopier:
    """Копирует объект через multipart загрузку с копированием частей"""

    def __init__(self, uploader: MultipartUploader):
        self._uploader = uploader
        self._logger = uploader.client.logger

    def copy(
        self,
        source_bucket: str,
        source_object: str,
        target_key: str,
        content_type: str,
        chunk_size: int = MIN_PART_SIZE,
    ) -> int:
        """
        Копирует ``source_object`` в ``target_key`` окнами по ``chunk_size`` байт

        Размер окна не меньше 100 KiB: сервис не принимает части меньше
        минимума, кроме последней. Последняя часть копируется открытым
        диапазоном. При любой ошибке целевая загрузка отменяется.

        Args:
            source_bucket: Бакет источника (пусто — бакет клиента)
            source_object: Ключ источника
            target_key: Ключ результата
            content_type: MIME тип результата
            chunk_size: Размер окна в байтах

        Returns:
            Количество скопированных частей
        """
        chunk_size = max(chunk_size, MIN_PART_SIZE)
        context = self._uploader.init(target_key, content_type)

        start = 0
        end = start + chunk_size - 1
        part_number = 1
        try:
            while True:
                remaining = self._uploader.upload_part_copy(
                    context, source_bucket, source_object, start, end, part_number
                )
                if remaining <= 0:
                    break
                start += chunk_size
                end = start + chunk_size - 1 if remaining > chunk_size else -1
                part_number += 1
            self._uploader.complete(context)
        except OssError:
            self._logger.error(
                f"Копирование /{source_bucket}/{source_object} -> {target_key} не удалось, "
                f"отменяем загрузку {context.upload_id}"
            )
            self._uploader.abort_quietly(context)
            raise

        self._logger.info(
            f"Скопировано /{source_bucket}/{source_object} -> {target_key}: {part_number} частей"
        )
        return part_number
