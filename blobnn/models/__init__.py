"""
Model management for the blobnn pipeline.

Provides:
- SegmentationModel: lazy-loaded TorchScript model with an enforced
  single-batch, single-channel output contract
- Device selection: accelerator probe fixed once per run

Usage:
    from blobnn.models import SegmentationModel, select_device

    with SegmentationModel("model.pt", device=select_device("auto")) as model:
        prob_map = model.predict(roi)
"""

from .manager import (
    SegmentationModel,
    probe_accelerator,
    describe_accelerator,
    select_device,
    DEVICE_CHOICES,
)

__all__ = [
    'SegmentationModel',
    'probe_accelerator',
    'describe_accelerator',
    'select_device',
    'DEVICE_CHOICES',
]
