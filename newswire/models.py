from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class FeedSource(BaseModel):
    """
    One configured RSS/Atom endpoint. `requireCategory` is an optional
    inclusion filter: only entries tagged with that category are kept.
    """
    id: str = Field(min_length=1)
    name: str
    url: str = Field(min_length=1)
    require_category: Optional[str] = Field(default=None, alias="requireCategory")
    enabled: bool = True

    class Config:
        populate_by_name = True

    @field_validator("id", "name", "url", mode="before")
    def _v_strip(cls, v):
        return str(v if v is not None else "").strip()

    @field_validator("require_category", mode="before")
    def _v_category(cls, v):
        v = str(v or "").strip()
        return v or None

    def accepts(self, categories: List[str]) -> bool:
        if not self.require_category:
            return True
        want = self.require_category.casefold()
        return any(c.strip().casefold() == want for c in categories)


class NewsItem(BaseModel):
    id: str                        # sha1(sourceId|link)
    title: str = ""
    link: str                      # canonical URL, never empty
    published: str = ""            # raw date string as found
    published_ts: int = Field(default=0, ge=0, alias="publishedTs")
    source_id: str = Field(alias="sourceId")
    source_name: str = Field(alias="sourceName")
    categories: List[str] = []
    image: str = ""
    excerpt: str = ""

    class Config:
        populate_by_name = True


class IngestError(BaseModel):
    source_id: str = Field(alias="sourceId")
    source_name: str = Field(alias="sourceName")
    url: str
    error: str

    class Config:
        populate_by_name = True


class IngestResult(BaseModel):
    items: List[NewsItem] = []
    error: Optional[IngestError] = None


class OutputPayload(BaseModel):
    generated_at: str = Field(alias="generatedAt")
    total: int
    sources: List[FeedSource] = []
    errors: List[IngestError] = []
    items: List[NewsItem] = []

    class Config:
        populate_by_name = True

    def to_json_dict(self) -> Dict[str, Any]:
        """Wire shape of the output file (camelCase, sources as configured)."""
        return {
            "generatedAt": self.generated_at,
            "total": self.total,
            "sources": [s.model_dump(by_alias=True, exclude_defaults=True) for s in self.sources],
            "errors": [e.model_dump(by_alias=True) for e in self.errors],
            "items": [it.model_dump(by_alias=True) for it in self.items],
        }
