"""Конфигурация приложения"""

import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Type, Union

from pydantic import AliasChoices, Field, field_validator  # type: ignore[import-untyped]
from pydantic_settings import (  # type: ignore[import-untyped]
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from osskit.oss.client import OssClient
from osskit.oss.transport import UrllibTransport


class Configuration(BaseSettings):
    """Конфигурация приложения"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        json_file="config.json",
        json_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    # Доступ к OSS (в config.json ключи в camelCase или PascalCase)
    access_key_id: str = Field(
        ...,
        validation_alias=AliasChoices("access_key_id", "accessKeyId", "AccessKeyId"),
        description="AccessKeyId",
    )
    access_key_secret: str = Field(
        ...,
        validation_alias=AliasChoices("access_key_secret", "accessKeySecret", "AccessKeySecret"),
        description="AccessKeySecret",
    )
    region: str = Field(
        ...,
        validation_alias=AliasChoices("region", "Region"),
        description="Регион, например oss-cn-hangzhou",
    )
    bucket: str = Field(
        ..., validation_alias=AliasChoices("bucket", "Bucket"), description="Имя бакета"
    )
    endpoint_domain: str = Field(
        default="aliyuncs.com",
        validation_alias=AliasChoices("endpoint_domain", "endpointDomain"),
        description="Домен сервиса: адрес бакета <bucket>.<region>.<domain>",
    )
    scheme: str = Field(default="http", pattern="^https?$", description="http или https")

    timeout: float = Field(default=60.0, ge=1, description="Таймаут запроса в секундах")
    part_size: int = Field(
        default=5 * 1024 * 1024,
        ge=100 * 1024,
        validation_alias=AliasChoices("part_size", "partSize"),
        description="Размер части для multipart загрузки и копирования",
    )

    # Настройки логирования
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("log_level", "logLevel", "LogLevel"),
        description="Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    http_log_level: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("http_log_level", "httpLogLevel"),
        description="Уровень для логгера HTTP транспорта. Пусто — как log_level.",
    )

    @field_validator("log_level", "http_log_level")
    @classmethod
    def validate_log_level(cls, v: Optional[str]) -> Optional[str]:
        """Валидирует уровень логирования"""
        if v is None:
            return None
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level должен быть одним из: {valid_levels}")
        return v_upper

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def load_config(json_file: Union[str, Path, None] = None) -> Configuration:
    """
    Загружает конфигурацию

    Args:
        json_file: JSON файл с настройками; его значения важнее окружения.
            Без него читаются окружение, .env и ./config.json.
    """
    if json_file is None:
        return Configuration()
    data = json.loads(Path(json_file).read_text(encoding="utf-8"))
    return Configuration(**data)


def build_client(config: Configuration, logger: Optional[logging.Logger] = None) -> OssClient:
    """Создает OssClient по конфигурации"""
    return OssClient(
        key_id=config.access_key_id,
        key_secret=config.access_key_secret,
        region=config.region,
        bucket=config.bucket,
        endpoint_domain=config.endpoint_domain,
        scheme=config.scheme,
        transport=UrllibTransport(timeout=config.timeout),
        logger=logger,
    )
