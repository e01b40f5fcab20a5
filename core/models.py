"""
Core data models for the Gallery Live API

Defines the realtime interaction records (Reaction, Comment, FeedItem) stored by
the realtime store, and the read-only Image models returned by the image source.
"""

from enum import Enum
from typing import List, Optional
from sqlmodel import SQLModel, Field
from pydantic import BaseModel, ConfigDict

UNTITLED_IMAGE = "Untitled Image"


class FeedItemType(str, Enum):
    REACTION = "reaction"
    COMMENT = "comment"


class WriteStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"  # domain record written, feed entry missing
    FAILED = "failed"


class Reaction(SQLModel, table=True):
    """
    A single emoji response by one user on one image.
    Immutable once created; no uniqueness constraint per user/emoji.
    """

    id: str = Field(primary_key=True, max_length=64)
    image_id: str = Field(index=True, max_length=255)
    emoji: str = Field(max_length=32)
    user_id: str = Field(max_length=64)
    username: str = Field(max_length=255)
    created_at: int = Field(index=True)  # epoch millis


class Comment(SQLModel, table=True):
    """Free-text note by one user on one image. Never edited."""

    id: str = Field(primary_key=True, max_length=64)
    image_id: str = Field(index=True, max_length=255)
    text: str = Field(max_length=4096)
    user_id: str = Field(max_length=64)
    username: str = Field(max_length=255)
    created_at: int = Field(index=True)


class FeedItem(SQLModel, table=True):
    """
    Append-only activity log entry mirroring a Reaction or Comment creation.

    The image title is a snapshot taken at write time so the feed renders
    without a lookup against the image source.
    """

    __tablename__ = "feed_item"

    id: str = Field(primary_key=True, max_length=64)
    type: FeedItemType
    image_id: str = Field(index=True, max_length=255)
    image_title: str = Field(default=UNTITLED_IMAGE, max_length=1024)
    user_id: str = Field(max_length=64)
    username: str = Field(max_length=255)
    created_at: int = Field(index=True)
    emoji: Optional[str] = Field(default=None, max_length=32)
    comment_text: Optional[str] = Field(default=None, max_length=4096)


# Image source models (read-only, never persisted)


class ImageUserLinks(BaseModel):
    model_config = ConfigDict(extra="ignore")

    html: Optional[str] = None


class ImageUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    username: Optional[str] = None
    links: ImageUserLinks = ImageUserLinks()


class ImageUrls(BaseModel):
    model_config = ConfigDict(extra="ignore")

    raw: Optional[str] = None
    full: Optional[str] = None
    regular: Optional[str] = None
    small: Optional[str] = None
    thumb: Optional[str] = None


class Image(BaseModel):
    """Image as returned by the remote image source."""

    model_config = ConfigDict(extra="ignore")

    id: str
    alt_description: Optional[str] = None
    description: Optional[str] = None
    user: ImageUser = ImageUser()
    urls: ImageUrls = ImageUrls()


class SearchResults(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total: int = 0
    total_pages: int = 0
    results: List[Image] = []


def image_title_of(image: Optional[Image]) -> str:
    """Display title for an image, falling back to the literal placeholder."""
    if image is None or not image.alt_description:
        return UNTITLED_IMAGE
    return image.alt_description


# Derived / API models


class ReactionGroup(BaseModel):
    emoji: str
    count: int
    user_ids: List[str]


class Identity(BaseModel):
    user_id: str
    username: str


class WriteResult(BaseModel):
    """Outcome of an interaction write. Writers return this instead of raising."""

    status: WriteStatus
    operation: str
    record_id: Optional[str] = None
    feed_item_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == WriteStatus.OK
