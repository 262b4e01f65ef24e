from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ListingFile(BaseModel):
    """Single file entry returned by the PublishedContent listing service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    file_name: str = Field("", alias="FileName")
    full_web_path: str = Field(alias="FullWebPath")


class ListingResult(BaseModel):
    """Files and sub-directories found at one listing path."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    files: list[ListingFile] = Field(default_factory=list, alias="Files")
    directories: list[str] = Field(default_factory=list, alias="Directories")
