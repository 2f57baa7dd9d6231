"""
Models for page assembly.

Defines the page instruction wire format, the assembly plan handed to
the compiler, and the tagged output bundle handed to the packager.

Wire format (JSON list, camelCase keys)::

    [
        {"isBlank": true},
        {"fileIndex": 0, "originalIndex": 3, "rotation": 90}
    ]
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field, ValidationError, field_validator
from pypdf import PdfWriter

from pdf_worker.core.exceptions import PlanValidationError


class OutputMode(str, Enum):
    """How compiled pages are grouped into documents."""

    MERGE = "merge"
    SEPARATE = "separate"


class CopyPage(BaseModel):
    """Copy one page from a source document, rotating it by a delta."""

    kind: Literal["copy"] = "copy"
    source_index: int = Field(default=0, alias="fileIndex", description="Source document index")
    original_page_index: int = Field(
        alias="originalIndex", description="0-based page index within the source"
    )
    rotation_delta: int = Field(
        default=0, alias="rotation", description="Degrees added to the page's rotation"
    )

    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}

    @field_validator("source_index", "rotation_delta", mode="before")
    @classmethod
    def null_as_zero(cls, v):
        """Treat explicit nulls like omitted fields."""
        return 0 if v is None else v


class BlankPage(BaseModel):
    """Insert an empty page with no source."""

    kind: Literal["blank"] = "blank"

    model_config = {"extra": "ignore", "frozen": True}


PageInstruction = Union[CopyPage, BlankPage]


class AssemblyPlan(BaseModel):
    """Ordered page instructions plus the output grouping mode."""

    instructions: list[PageInstruction] = Field(default_factory=list)
    mode: OutputMode = Field(default=OutputMode.MERGE)

    def __len__(self) -> int:
        return len(self.instructions)

    def source_indices(self) -> set[int]:
        """Return every source index referenced by a copy instruction."""
        return {i.source_index for i in self.instructions if isinstance(i, CopyPage)}


def _format_loc(position: int, loc: tuple[Any, ...]) -> str:
    return f"[{position}]" + "".join(f".{part}" for part in loc)


def parse_instructions(raw: str | bytes | list[Any]) -> list[PageInstruction]:
    """
    Parse the page instruction wire format.

    Args:
        raw: JSON text or an already decoded list

    Returns:
        Instructions in list order

    Raises:
        PlanValidationError: If the JSON is malformed, not a list, or an
            item is missing required fields
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PlanValidationError(f"Instructions are not valid JSON: {e.msg}") from e

    if not isinstance(raw, list):
        raise PlanValidationError("Instructions must be a JSON list")

    instructions: list[PageInstruction] = []
    fields: dict[str, str] = {}

    for position, item in enumerate(raw):
        if not isinstance(item, dict):
            fields[f"[{position}]"] = "Instruction must be an object"
            continue
        if item.get("isBlank"):
            instructions.append(BlankPage())
            continue
        try:
            instructions.append(CopyPage.model_validate(item))
        except ValidationError as e:
            for error in e.errors():
                fields[_format_loc(position, error["loc"])] = error["msg"]

    if fields:
        raise PlanValidationError(
            f"Invalid page instructions in {len(fields)} field(s)", fields=fields
        )
    return instructions


def build_plan(raw: str | bytes | list[Any], mode: str | OutputMode = OutputMode.MERGE) -> AssemblyPlan:
    """
    Parse instructions and attach an output mode.

    Raises:
        PlanValidationError: If the instructions or the mode are invalid
    """
    try:
        output_mode = OutputMode(mode)
    except ValueError as e:
        raise PlanValidationError(
            f"Invalid mode: {mode}", fields={"mode": "must be 'merge' or 'separate'"}
        ) from e
    return AssemblyPlan(instructions=parse_instructions(raw), mode=output_mode)


@dataclass(frozen=True)
class GeneratedDocument:
    """A compiled, not yet serialized output document."""

    name: str
    writer: PdfWriter
    page_count: int


@dataclass(frozen=True)
class Single:
    """Bundle holding exactly one document."""

    document: GeneratedDocument

    @property
    def documents(self) -> tuple[GeneratedDocument, ...]:
        return (self.document,)


@dataclass(frozen=True)
class Multiple:
    """Bundle holding several documents, packaged as one archive."""

    documents: tuple[GeneratedDocument, ...]


OutputBundle = Union[Single, Multiple]


def bundle_of(documents: list[GeneratedDocument]) -> OutputBundle:
    """Tag a list of documents as Single or Multiple."""
    if not documents:
        raise PlanValidationError("The resulting document has no pages")
    if len(documents) == 1:
        return Single(documents[0])
    return Multiple(tuple(documents))
