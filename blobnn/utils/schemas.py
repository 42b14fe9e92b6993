"""
Row schemas for the blobnn input manifest.

Uses Pydantic for validation with clear error messages. A manifest row is
parsed once per run into a frozen ``ManifestRow``; downstream code never sees
raw tab-separated text.

Usage:
    from blobnn.utils.schemas import ManifestRow, flag_token

    row = ManifestRow.from_columns(line.rstrip("\\n").split("\\t"))
    print(row.uid, flag_token(row.det_success))
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Boolean columns are written as a single character
FLAG_TRUE = "x"
FLAG_FALSE = "."

MANIFEST_COLUMNS = [
    "uid",
    "filename",
    "sample_id",
    "sample_name",
    "det_success",
    "scale_success",
    "scale_dark",
    "scale_light",
]


def flag_token(value: bool) -> str:
    """Render a boolean as the ledger's one-character flag."""
    return FLAG_TRUE if value else FLAG_FALSE


def parse_flag(token: str) -> bool:
    """Parse a one-character flag ('x' or '.')."""
    if token == FLAG_TRUE:
        return True
    if token == FLAG_FALSE:
        return False
    raise ValueError(f"flag must be '{FLAG_TRUE}' or '{FLAG_FALSE}', got {token!r}")


class ManifestRow(BaseModel):
    """One ROI as listed in rois.tsv by the upstream extraction step."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    uid: int = Field(gt=0)
    filename: str
    sample_id: int
    sample_name: str
    det_success: bool
    scale_success: bool
    scale_dark: int
    scale_light: int

    @field_validator("det_success", "scale_success", mode="before")
    @classmethod
    def _parse_flag(cls, v):
        if isinstance(v, str):
            return parse_flag(v)
        return v

    @classmethod
    def from_columns(cls, columns: List[str]) -> "ManifestRow":
        """Create from the tab-split columns of a manifest line.

        Columns past the eighth are ignored.
        """
        if len(columns) < len(MANIFEST_COLUMNS):
            raise ValueError(
                f"expected {len(MANIFEST_COLUMNS)} columns, got {len(columns)}"
            )
        return cls(**dict(zip(MANIFEST_COLUMNS, columns)))
