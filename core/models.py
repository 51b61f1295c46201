"""
core/models.py -- Shared domain constants and listing containers.

Entity dataclasses live next to their repositories (auth/models.py for users,
catalog/models.py for stores and ratings). This module holds what every layer
shares: the input constraints of the domain and the paginated result shape.
"""

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

USER_NAME_MIN = 20
USER_NAME_MAX = 60
EMAIL_MAX = 120
ADDRESS_MAX = 400
STORE_NAME_MAX = 100
PASSWORD_MIN = 8
PASSWORD_MAX = 16
RATING_MIN = 1
RATING_MAX = 5

PASSWORD_SPECIALS = '!@#$%^&*(),.?":{}|<>'
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

SORT_ASC = "ASC"
SORT_DESC = "DESC"

T = TypeVar("T")


@dataclass
class PageMeta:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class Page(Generic[T]):
    """One window of a listing plus the size of the full match set."""

    meta: PageMeta
    data: list[T] = field(default_factory=list)
