from typing import Optional

from pydantic import BaseModel


class CursorPage(BaseModel):
    items: list
    next_cursor: Optional[str] = None


class Page(BaseModel):
    items: list
    total: int
    page: int
    total_pages: int
