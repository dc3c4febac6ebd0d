"""
Data models for the Hydrus Auto-Tagger.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ModelDescriptor(BaseModel):
    """Contents of a model directory's ``model.json`` manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, protected_namespaces=())

    name: str
    source: str = ""
    model_file: str = Field(alias="modelfile")
    tags_file: str = Field(alias="tagsfile")
    ratings_flag: bool = Field(default=False, alias="ratingsflag")
    number_of_ratings: int = Field(default=0, ge=0, alias="numberofratings")
    # 255 feeds raw pixel values, 1 feeds values scaled to 0..1
    pixel_max: float = Field(default=255.0, gt=0.0, alias="pixelmax")

    @model_validator(mode="after")
    def check_ratings(self):
        if self.ratings_flag and self.number_of_ratings == 0:
            raise ValueError("ratingsflag is set but numberofratings is 0")
        return self


class TagCommit(BaseModel):
    """Tags to add to one file, keyed by tag service."""

    hashes: List[str]
    service_keys_to_tags: Dict[str, List[str]] = {}

    @classmethod
    def for_hash(cls, file_hash: str, service_key: str, tags: List[str]) -> "TagCommit":
        return cls(hashes=[file_hash], service_keys_to_tags={service_key: list(tags)})


class ItemResult(BaseModel):
    """Result of tagging a single file."""
    file_hash: str
    success: bool
    tags: List[str] = []
    processing_time: float = 0.0
    error: Optional[str] = None


class BatchResult(BaseModel):
    """Result of tagging a batch of files."""
    batch_size: int
    successful: int
    failed: int
    total_tags_assigned: int
    processing_time: float
    results: List[ItemResult]

    @classmethod
    def empty(cls) -> "BatchResult":
        return cls(
            batch_size=0,
            successful=0,
            failed=0,
            total_tags_assigned=0,
            processing_time=0.0,
            results=[],
        )
