"""Консольный клиент OSS: загрузка, чтение, листинг, копирование и очистка загрузок"""

import argparse
import logging
import sys
from pathlib import Path

from osskit.config import Configuration, build_client, load_config
from osskit.oss import (
    ListUploadsMarker,
    MultipartUploader,
    ObjectCopier,
    OssClient,
    OssError,
    ServiceError,
    UploadSweeper,
)
from osskit.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def cmd_put(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    uploader = MultipartUploader(client)
    key = uploader.upload_file(
        args.file, args.key, content_type=args.content_type, part_size=config.part_size
    )
    print(key)
    return 0


def cmd_get(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    data, status = client.get_object_range(args.key, args.start, args.end)
    logger.info(f"Получено {len(data)} байт, HTTP {status}")
    if args.output == "-":
        sys.stdout.buffer.write(data)
    else:
        Path(args.output or Path(args.key).name).write_bytes(data)
    return 0


def cmd_head(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    metadata = client.get_object_metadata(args.key)
    print(f"Content-Length: {metadata.content_length}")
    print(f"Content-Type: {metadata.content_type}")
    print(f"ETag: {metadata.etag}")
    print(f"Last-Modified: {metadata.get('Last-Modified')}")
    return 0


def cmd_ls(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    marker = ""
    while True:
        page = client.list_files(args.prefix, args.delimiter, marker, args.max_keys)
        for prefix in page["common_prefixes"]:
            print(f"PRE {prefix}")
        for key in page["keys"]:
            print(key)
        if page["next_marker"] is None or not args.all:
            return 0
        marker = page["next_marker"]


def cmd_rm(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    client.delete_objects(*args.keys)
    return 0


def cmd_copy(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    copier = ObjectCopier(MultipartUploader(client))
    parts = copier.copy(
        args.source_bucket,
        args.source,
        args.target,
        args.content_type,
        args.chunk_size or config.part_size,
    )
    logger.info(f"Готово: {parts} частей")
    return 0


def cmd_uploads(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    uploader = MultipartUploader(client)
    marker: ListUploadsMarker | None = None
    while True:
        contexts, marker = uploader.list_uploads(args.prefix, marker)
        for context in contexts:
            print(f"{context.upload_id}\t{context.key}")
        if marker is None:
            return 0


def cmd_sweep(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    report = UploadSweeper(MultipartUploader(client)).abort_all(args.prefix)
    print(f"found={report['found']} aborted={report['aborted']} failed={len(report['failed'])}")
    return 0 if not report["failed"] else 1


def cmd_presign(client: OssClient, config: Configuration, args: argparse.Namespace) -> int:
    print(client.presign_url(args.key, args.expires))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Клиент объектного хранилища OSS")
    parser.add_argument(
        "-c", "--config", default=None, help="JSON файл конфигурации (по умолчанию config.json)"
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Минимальный вывод (только ошибки)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("put", help="Загрузить файл (большие файлы — multipart)")
    p.add_argument("file", help="Путь к локальному файлу")
    p.add_argument("-k", "--key", default=None, help="Ключ объекта (по умолчанию — имя файла)")
    p.add_argument("-t", "--content-type", default="application/octet-stream")
    p.set_defaults(handler=cmd_put)

    p = sub.add_parser("get", help="Скачать объект или диапазон байт")
    p.add_argument("key")
    p.add_argument("--start", type=int, default=-1)
    p.add_argument("--end", type=int, default=-1)
    p.add_argument("-o", "--output", default=None, help="Файл результата, '-' — stdout")
    p.set_defaults(handler=cmd_get)

    p = sub.add_parser("head", help="Метаданные объекта")
    p.add_argument("key")
    p.set_defaults(handler=cmd_head)

    p = sub.add_parser("ls", help="Листинг объектов")
    p.add_argument("prefix", nargs="?", default="")
    p.add_argument("-d", "--delimiter", default="")
    p.add_argument("-m", "--max-keys", type=int, default=-1)
    p.add_argument("-a", "--all", action="store_true", help="Пройти все страницы")
    p.set_defaults(handler=cmd_ls)

    p = sub.add_parser("rm", help="Удалить объекты")
    p.add_argument("keys", nargs="+")
    p.set_defaults(handler=cmd_rm)

    p = sub.add_parser("copy", help="Скопировать объект частями на стороне сервиса")
    p.add_argument("source")
    p.add_argument("target")
    p.add_argument("-b", "--source-bucket", default="", help="Бакет источника")
    p.add_argument("-t", "--content-type", default="application/octet-stream")
    p.add_argument("-s", "--chunk-size", type=int, default=0)
    p.set_defaults(handler=cmd_copy)

    p = sub.add_parser("uploads", help="Незавершенные multipart загрузки")
    p.add_argument("prefix", nargs="?", default="")
    p.set_defaults(handler=cmd_uploads)

    p = sub.add_parser("sweep", help="Отменить незавершенные multipart загрузки")
    p.add_argument("prefix", nargs="?", default="")
    p.set_defaults(handler=cmd_sweep)

    p = sub.add_parser("presign", help="Подписанная ссылка на объект")
    p.add_argument("key")
    p.add_argument("-e", "--expires", type=int, default=3600, help="Время жизни в секундах")
    p.set_defaults(handler=cmd_presign)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    log_level = "WARNING" if args.quiet else config.log_level
    client_logger = setup_logging(level=log_level, http_log_level=config.http_log_level)

    client = build_client(config, logger=client_logger)
    try:
        return args.handler(client, config, args)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except ServiceError as e:
        logger.error(f"Ошибка сервиса {e.status_code} {e.code}: {e.message} (RequestId {e.request_id})")
        return 1
    except OssError as e:
        logger.exception(f"Ошибка OSS: {e}")
        return 1
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
