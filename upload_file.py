"""Скрипт для загрузки файла в бакет OSS"""

import argparse
import logging
import sys

from osskit.config import build_client, load_config
from osskit.oss import MultipartUploader
from osskit.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Загрузить файл в бакет OSS")
    parser.add_argument(
        "file",
        type=str,
        help="Путь к локальному файлу для загрузки",
    )
    parser.add_argument(
        "-k",
        "--key",
        type=str,
        default=None,
        help="Ключ объекта в OSS (по умолчанию — имя файла)",
    )
    parser.add_argument(
        "-t",
        "--content-type",
        type=str,
        default="application/octet-stream",
        help="MIME тип объекта",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="JSON файл конфигурации",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Минимальный вывод (только ключ или ошибка)",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    log_level = "WARNING" if args.quiet else config.log_level
    client_logger = setup_logging(level=log_level, http_log_level=config.http_log_level)

    client = build_client(config, logger=client_logger)
    uploader = MultipartUploader(client)

    try:
        key = uploader.upload_file(
            local_path=args.file,
            object_key=args.key,
            content_type=args.content_type,
            part_size=config.part_size,
        )
        if args.quiet:
            print(key)
        else:
            logger.info(f"Готово: oss://{config.bucket}/{key}")
        return 0
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.exception(f"Ошибка загрузки: {e}")
        return 1
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
