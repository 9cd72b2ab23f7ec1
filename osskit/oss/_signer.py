"""Подпись запросов OSS (HMAC-SHA1, заголовок ``Authorization: OSS id:signature``).

Каноническая строка строится из метода, Content-MD5, Content-Type, Date,
заголовков ``x-oss-*`` и пути ``/bucket/object`` с подресурсами.
Модуль чистый: никакого I/O, только данные запроса и секретный ключ.
"""

import base64
import hashlib
import hmac
import logging
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

OSS_HEADER_PREFIX = "x-oss-"

# Query-параметры, которые являются подресурсами и входят в подпись.
SUB_RESOURCES = frozenset(
    {
        "acl",
        "uploads",
        "location",
        "cors",
        "logging",
        "website",
        "referer",
        "lifecycle",
        "delete",
        "uploadId",
        "partNumber",
        "security-token",
        "response-cache-control",
        "response-content-disposition",
        "response-content-encoding",
        "response-content-language",
        "response-content-type",
        "response-expires",
    }
)

MultiDict = Mapping[str, Sequence[str]]


def _canonical_oss_headers(headers: MultiDict) -> str:
    """Блок ``x-oss-*`` заголовков: отсортирован, с завершающим переводом строки."""
    lines = []
    for name in sorted(headers, key=str.lower):
        lower = name.lower()
        if lower.startswith(OSS_HEADER_PREFIX):
            lines.append(f"{lower}:{','.join(headers[name])}")
    if not lines:
        return ""
    lines.sort()
    return "\n".join(lines) + "\n"


def canonical_sub_resources(params: MultiDict | None) -> str:
    """Подресурсы для подписи: без URL-кодирования, отсортированы, через ``&``."""
    if not params:
        return ""
    entries = []
    for key in sorted(params):
        if key not in SUB_RESOURCES:
            continue
        for value in params[key]:
            # Значения подресурсов при подписи не кодируются
            entries.append(key if value == "" else f"{key}={value}")
    entries.sort()
    return "&".join(entries)


def canonical_string(
    *,
    method: str,
    bucket: str,
    object_key: str,
    params: MultiDict | None,
    headers: MultiDict,
) -> str:
    """
    Строит каноническую строку запроса OSS.

    Args:
        method: HTTP метод
        bucket: Имя бакета
        object_key: Ключ объекта (может быть пустым для операций над бакетом)
        params: Query-параметры запроса (многозначные)
        headers: Заголовки запроса (многозначные)

    Returns:
        Строка, по которой считается HMAC
    """
    md5 = ctype = date = ""
    for name in sorted(headers, key=str.lower):
        values = headers[name]
        if not values:
            continue
        lower = name.lower()
        if lower == "content-md5":
            md5 = values[0]
        elif lower == "content-type":
            ctype = values[0]
        elif lower == "date":
            date = values[0]

    # Для подписанных ссылок вместо Date используется Expires
    if params and params.get("Expires"):
        date = params["Expires"][0]

    resource = f"/{bucket}/{object_key}"
    sub_resources = canonical_sub_resources(params)
    if sub_resources:
        resource = f"{resource}?{sub_resources}"

    return (
        f"{method}\n"
        f"{md5}\n"
        f"{ctype}\n"
        f"{date}\n"
        f"{_canonical_oss_headers(headers)}"
        f"{resource}"
    )


def compute_signature(payload: str, key_secret: str) -> str:
    """HMAC-SHA1 от канонической строки, закодированный в base64."""
    digest = hmac.new(
        key_secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def sign_request(
    *,
    key_id: str,
    key_secret: str,
    method: str,
    bucket: str,
    object_key: str,
    params: MultiDict | None,
    headers: dict[str, list[str]],
) -> str:
    """
    Подписывает запрос и записывает заголовок Authorization в ``headers``.

    Подпись считается по финальному виду запроса: всё, что добавлено в
    заголовки или параметры после вызова, делает подпись недействительной.

    Returns:
        Значение заголовка Authorization
    """
    payload = canonical_string(
        method=method,
        bucket=bucket,
        object_key=object_key,
        params=params,
        headers=headers,
    )
    signature = compute_signature(payload, key_secret)
    authorization = f"OSS {key_id}:{signature}"
    headers["Authorization"] = [authorization]

    logger.debug(f"Signature payload: {payload!r}")
    logger.debug(f"Signature: {signature!r}")
    return authorization
