"""Bookmark and embedding record models."""

from pydantic import BaseModel, ConfigDict, Field


class Bookmark(BaseModel):
    """Saved bookmark as read from the bookmark collection.

    Accepts both snake_case and the camelCase keys used by browser exports
    (``folderPath``, ``addDate``, ``createdAt``).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    url: str
    title: str = ""
    domain: str = ""
    folder_path: str = Field(default="", alias="folderPath")
    add_date: int | None = Field(default=None, alias="addDate", description="Epoch seconds or ms")
    created_at: int = Field(default=0, alias="createdAt", description="Epoch seconds or ms")


class Embedding(BaseModel):
    """Embedding vector for a single bookmark."""

    model_config = ConfigDict(populate_by_name=True)

    bookmark_id: int = Field(alias="bookmarkId")
    vector: list[float]
    model_name: str = Field(default="", alias="modelName")
