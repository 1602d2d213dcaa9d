"""Segment and vector-index models.

Every component that reads or writes index metadata goes through
:class:`SegmentMetadata`, a single versioned record.  The vector index
only stores flat scalar metadata, so the record knows how to flatten
itself (:meth:`SegmentMetadata.to_index_metadata`) and how to rebuild
itself from whatever a provider hands back
(:meth:`SegmentMetadata.from_index_metadata`).

Models that appear in the NDJSON progress stream derive from
:class:`CamelModel` so they serialize with camelCase keys.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SEGMENT_METADATA_VERSION = 1

MetadataValue = str | int | float | bool


class CamelModel(BaseModel):
    """Frozen model serialized with camelCase aliases on the wire."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# SegmentMetadata -- the one metadata record shared by all components.
# ---------------------------------------------------------------------------
class SegmentMetadata(CamelModel):
    """Provenance of one segment inside its document."""

    schema_version: int = Field(default=SEGMENT_METADATA_VERSION, ge=1)
    filename: str
    slice_index: int = Field(ge=0)
    total_slices: int = Field(ge=1)
    first_page: int = Field(default=0, ge=0)
    last_page: int = Field(default=0, ge=0)
    segment_index: int = Field(ge=0)
    categories: tuple[str, ...] = ()
    text: str = ""

    def to_index_metadata(self) -> dict[str, MetadataValue]:
        """Flatten to the scalar-only dict vector indexes accept."""
        return {
            "schema_version": self.schema_version,
            "filename": self.filename,
            "slice_index": self.slice_index,
            "total_slices": self.total_slices,
            "first_page": self.first_page,
            "last_page": self.last_page,
            "segment_index": self.segment_index,
            "categories": ",".join(self.categories),
            "text": self.text,
        }

    @classmethod
    def from_index_metadata(cls, meta: dict[str, Any]) -> SegmentMetadata:
        """Rebuild from a flattened metadata dict (inverse of :meth:`to_index_metadata`)."""
        raw_categories = meta.get("categories") or ""
        if isinstance(raw_categories, str):
            categories = tuple(c for c in raw_categories.split(",") if c)
        else:
            categories = tuple(raw_categories)
        return cls(
            schema_version=int(meta.get("schema_version", SEGMENT_METADATA_VERSION)),
            filename=str(meta.get("filename", "")),
            slice_index=int(meta.get("slice_index", 0)),
            total_slices=int(meta.get("total_slices", 1)),
            first_page=int(meta.get("first_page", 0)),
            last_page=int(meta.get("last_page", 0)),
            segment_index=int(meta.get("segment_index", 0)),
            categories=categories,
            text=str(meta.get("text", "")),
        )


class Segment(BaseModel):
    """A bounded unit of extracted text plus its embedding vector."""

    model_config = ConfigDict(frozen=True)

    segment_id: str = Field(description="<slice id>-segment-<ordinal>")
    text: str
    vector: tuple[float, ...] = Field(repr=False)
    metadata: SegmentMetadata

    @property
    def dimension(self) -> int:
        return len(self.vector)


# ---------------------------------------------------------------------------
# Vector-index wire records
# ---------------------------------------------------------------------------
class IndexRecord(BaseModel):
    """One upsert item: ``{id, vector, metadata}``."""

    model_config = ConfigDict(frozen=True)

    id: str
    vector: tuple[float, ...] = Field(repr=False)
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)

    @classmethod
    def from_segment(cls, segment: Segment) -> IndexRecord:
        return cls(
            id=segment.segment_id,
            vector=segment.vector,
            metadata=segment.metadata.to_index_metadata(),
        )


class IndexMatch(BaseModel):
    """One ranked result of a similarity query, as returned by a provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float = Field(ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SegmentMatch(CamelModel):
    """A retrieval hit with its metadata rebuilt into :class:`SegmentMetadata`."""

    id: str
    score: float = Field(ge=0.0, le=1.0)
    metadata: SegmentMetadata

    @classmethod
    def from_index_match(cls, match: IndexMatch) -> SegmentMatch:
        return cls(
            id=match.id,
            score=match.score,
            metadata=SegmentMetadata.from_index_metadata(match.metadata),
        )
