from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from core import constants


class Enclosure(BaseModel):
    url: str = ""
    length: int = 0
    type: str = constants.DEFAULT_ENCLOSURE_TYPE


class FeedItem(BaseModel):
    """Normalized record for one iterator match. Lives only until rendering."""

    title: str = ""
    description: str = ""
    url: str = ""
    author: str = ""
    date: Optional[datetime] = None
    guid: str = ""
    guid_is_permalink: bool = False
    enclosure: Enclosure = Field(default_factory=Enclosure)
    categories: List[str] = Field(default_factory=list)

    def non_empty_fields(self) -> set:
        """Field names carrying a value; enclosure counts only with a URL."""
        present = set()
        for name in ("title", "description", "url", "author", "guid"):
            if getattr(self, name):
                present.add(name)
        if self.date is not None:
            present.add("date")
        if self.enclosure.url:
            present.add("enclosure")
        if self.categories:
            present.add("categories")
        return present


class ChannelMeta(BaseModel):
    title: str = ""
    description: str = ""
    link: str = ""
    language: Optional[str] = None
    image_url: Optional[str] = None
    generator: str = constants.FEED_GENERATOR
    author: str = constants.FEED_AUTHOR
    pub_date: Optional[datetime] = None
    last_build_date: Optional[datetime] = None


class FeedRunResult(BaseModel):
    """Outcome of one feed's refresh cycle."""

    feed_id: str
    success: bool = False
    item_count: int = 0
    new_item_count: int = 0
    notified: bool = False
    output_path: Optional[str] = None
    error: Optional[str] = None
