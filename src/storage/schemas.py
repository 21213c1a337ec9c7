"""
Ledger row models.

Field names follow the SQL columns so rows from ``aiosqlite.Row`` map directly.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CrawlRecord(BaseModel):
    """One completed crawl (``crawled_sites`` row)."""

    model_config = ConfigDict(frozen=True)

    id: int | None = Field(default=None, description="Assigned by the ledger on insert")
    timestamp: str = Field(..., description="Completion time, ISO-8601")
    url: str
    url_hash: str
    http_code: int = 0
    file_directory: str = Field(..., description="Hour bucket holding the artifacts")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CrawlRecord":
        return cls(
            id=row["id"],
            timestamp=str(row["timestamp"]),
            url=row["url"],
            url_hash=row["url_hash"],
            http_code=row["http_code"] or 0,
            file_directory=row["file_directory"],
        )


class DiscoveredLink(BaseModel):
    """One outbound link of a crawled page (``links`` row)."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    crawled_site_id: int
    url: str
    url_hash: str
