"""HTTP транспорт: выполняет подготовленный запрос и возвращает статус, заголовки и тело"""

import logging
import ssl
import urllib.error
import urllib.request
from typing import BinaryIO, Mapping, Optional, Protocol, Union

from osskit.oss.errors import TransportError

logger = logging.getLogger(__name__)

Body = Union[bytes, BinaryIO, None]


class HttpResponse:
    """
    Ответ сервиса.

    Тело читается лениво и должно быть закрыто вызывающим кодом
    (``close()`` или ``with response: ...``).
    """

    def __init__(
        self,
        status: int,
        reason: str,
        headers: Mapping[str, str],
        body: Optional[BinaryIO] = None,
    ):
        self.status = status
        self.reason = reason
        self._headers = {name.lower(): value for name, value in headers.items()}
        self._body = body
        self._closed = body is None

    @property
    def headers(self) -> dict[str, str]:
        """Заголовки ответа, имена в нижнем регистре"""
        return dict(self._headers)

    def header(self, name: str, default: str = "") -> str:
        return self._headers.get(name.lower(), default)

    def read(self, amt: int = -1) -> bytes:
        if self._closed or self._body is None:
            return b""
        if amt is None or amt < 0:
            return self._body.read()
        return self._body.read(amt)

    def close(self) -> None:
        if not self._closed and self._body is not None:
            self._body.close()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "HttpResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Transport(Protocol):
    """Исполнитель HTTP запросов. Любой HTTP клиент подходит, если реализует ``execute``."""

    def execute(
        self, method: str, url: str, headers: Mapping[str, str], body: Body = None
    ) -> HttpResponse: ...


class UrllibTransport:
    """Транспорт на urllib.request: одно соединение на запрос, без повторов"""

    def __init__(self, timeout: float = 60.0, verify_ssl: bool = True):
        """
        Args:
            timeout: Таймаут сокета в секундах
            verify_ssl: Проверять ли сертификат сервера для https
        """
        self._timeout = timeout
        self._ssl_ctx = ssl.create_default_context()
        if not verify_ssl:
            self._ssl_ctx.check_hostname = False
            self._ssl_ctx.verify_mode = ssl.CERT_NONE

    def execute(
        self, method: str, url: str, headers: Mapping[str, str], body: Body = None
    ) -> HttpResponse:
        req = urllib.request.Request(url, data=body, method=method, headers=dict(headers))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"request -> {method} {url} {dict(headers)}")

        try:
            resp = urllib.request.urlopen(req, timeout=self._timeout, context=self._ssl_ctx)
        except urllib.error.HTTPError as e:
            # Статус вне 2xx: разбор ошибки делает клиент по телу ответа
            resp = e
        except (urllib.error.URLError, OSError) as e:
            raise TransportError(f"{method} {url}: {e}") from e

        status = getattr(resp, "status", None) or resp.code
        response = HttpResponse(
            status=status,
            reason=str(resp.reason or ""),
            headers=dict(resp.headers.items()) if resp.headers else {},
            body=resp,
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"response -> {status} {resp.reason} {response.headers}")
        return response
