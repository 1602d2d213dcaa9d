"""Document intake and extraction models.

A :class:`SourceDocument` is one uploaded PDF.  The page splitter turns it
into :class:`DocumentSlice` objects (page ranges with their own PDF bytes),
and the extraction service turns each slice into an :class:`ExtractedText`.
Slices are consumed once and discarded; extracted texts are kept only for
the debug trace in the completion payload.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceDocument(BaseModel):
    """An accepted PDF upload, held in memory for the duration of a run."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(description="Original upload filename.")
    content: bytes = Field(repr=False, description="Raw PDF bytes.")
    content_type: str = Field(default="application/pdf")

    @property
    def size(self) -> int:
        return len(self.content)


class DocumentSlice(BaseModel):
    """One page-range unit of a source document.

    ``page_indices`` are zero-based, sorted and de-duplicated.  The primary
    range ``[primary_start, primary_end)`` is the part of the document this
    slice is responsible for; the remaining indices are overlap pages
    borrowed from its neighbours for context.
    """

    model_config = ConfigDict(frozen=True)

    filename: str
    slice_index: int = Field(ge=0)
    total_slices: int = Field(ge=1)
    page_indices: tuple[int, ...] = Field(min_length=1)
    primary_start: int = Field(ge=0)
    primary_end: int = Field(ge=1)
    content: bytes = Field(repr=False, description="PDF bytes holding only page_indices.")

    @field_validator("page_indices")
    @classmethod
    def _sorted_unique(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if list(value) != sorted(set(value)):
            raise ValueError("page_indices must be sorted and unique")
        return value

    @property
    def slice_id(self) -> str:
        return f"{self.filename}-chunk-{self.slice_index}"

    @property
    def first_page(self) -> int:
        return self.page_indices[0]

    @property
    def last_page(self) -> int:
        return self.page_indices[-1]


class ExtractedText(BaseModel):
    """The extraction service's output for one :class:`DocumentSlice`."""

    model_config = ConfigDict(frozen=True)

    filename: str
    slice_index: int = Field(ge=0)
    total_slices: int = Field(ge=1)
    first_page: int = Field(default=0, ge=0)
    last_page: int = Field(default=0, ge=0)
    text: str

    @property
    def slice_id(self) -> str:
        return f"{self.filename}-chunk-{self.slice_index}"
