"""
Detection module for blobnn.

Turns a model probability map into foreground and background masks.
"""

from .blob_masks import (
    BlobMaskBuilder,
    BlobMasks,
    ContourInfo,
    PLACEHOLDER_SHAPE,
    placeholder_masks,
    binarize,
    is_accepted_area,
    extract_contours,
    initial_loose_background,
    strict_from_loose,
)

__all__ = [
    'BlobMaskBuilder',
    'BlobMasks',
    'ContourInfo',
    'PLACEHOLDER_SHAPE',
    'placeholder_masks',
    'binarize',
    'is_accepted_area',
    'extract_contours',
    'initial_loose_background',
    'strict_from_loose',
]
