"""Paging metadata shared by list endpoints."""

from pydantic import BaseModel


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
