"""Типы данных для проекта"""

from typing import List, Optional, TypedDict


class ObjectListing(TypedDict):
    """Одна страница листинга объектов бакета"""

    keys: List[str]
    common_prefixes: List[str]
    next_marker: Optional[str]


class SweepReport(TypedDict):
    """Итог очистки незавершенных multipart загрузок"""

    found: int
    aborted: int
    failed: List[str]
