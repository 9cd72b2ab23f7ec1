"""Повторные попытки для внешних циклов (листинг, очистка). Ядро клиента не повторяет запросы."""

import logging
import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    should_retry: Optional[Callable[[Exception], bool]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Декоратор для повторных попыток выполнения функции

    Args:
        max_attempts: Максимальное количество попыток
        delay: Начальная задержка между попытками в секундах
        backoff: Множитель для увеличения задержки
        exceptions: Исключения, при которых повторяем попытку
        should_retry: Дополнительный фильтр; False — исключение пробрасывается сразу

    Returns:
        Декорированная функция
    """
    if max_attempts < 1:
        raise ValueError("max_attempts должен быть >= 1")

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            current_delay = delay
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt >= max_attempts:
                        logger.error(
                            f"Все {max_attempts} попыток не удались для {func.__name__}: {e}"
                        )
                        raise
                    logger.warning(
                        f"Попытка {attempt}/{max_attempts} не удалась для {func.__name__}: {e}. "
                        f"Повтор через {current_delay:.1f}с."
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff
                    attempt += 1

        return wrapper

    return decorator
