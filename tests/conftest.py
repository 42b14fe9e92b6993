"""
Pytest fixtures for blobnn tests.

Provides synthetic ROIs, tiny TorchScript models, and output directories laid
out the way the ROI extraction step leaves them (rois.tsv + sources/).
"""

import sys
from pathlib import Path

import cv2
import numpy as np
import pytest
import torch

sys.path.insert(0, str(Path(__file__).parent.parent))


ROI_SIZE = 128
DISC_RADIUS = 36
DISC_VALUE = 30
BACKGROUND_VALUE = 200


class _ScaleModel(torch.nn.Module):
    """Maps the inverted ROI to [0, 1]: dark blobs become high probability."""

    def forward(self, x):
        return x / 255.0


class _TwoChannelModel(torch.nn.Module):
    """Violates the single-channel output contract."""

    def forward(self, x):
        return torch.cat([x, x], dim=1) / 255.0


def _save_traced(module, path):
    traced = torch.jit.trace(module, torch.zeros(1, 1, 16, 16))
    traced.save(str(path))
    return path


@pytest.fixture(scope="session")
def model_path(tmp_path_factory):
    """
    TorchScript model that returns input / 255.

    Fed the inverted ROI, it reports a dark disc (30) as 225 and a light
    background (200) as 55 on the 8-bit map.
    """
    return _save_traced(_ScaleModel(), tmp_path_factory.mktemp("models") / "scale.pt")


@pytest.fixture(scope="session")
def two_channel_model_path(tmp_path_factory):
    """TorchScript model whose output has two channels."""
    return _save_traced(_TwoChannelModel(), tmp_path_factory.mktemp("models") / "two_channel.pt")


@pytest.fixture
def blob_roi():
    """
    128x128 uint8 ROI: a dark disc (radius 36, value 30) centered on a light
    background (value 200). Disc contour area is roughly 4000 px.

    Returns:
        np.ndarray: (128, 128) uint8 array
    """
    roi = np.full((ROI_SIZE, ROI_SIZE), BACKGROUND_VALUE, dtype=np.uint8)
    cv2.circle(roi, (ROI_SIZE // 2, ROI_SIZE // 2), DISC_RADIUS, DISC_VALUE, -1)
    return roi


@pytest.fixture
def blank_roi():
    """128x128 uint8 ROI with no blob."""
    return np.full((ROI_SIZE, ROI_SIZE), BACKGROUND_VALUE, dtype=np.uint8)


@pytest.fixture
def blob_prob_map(blob_roi):
    """Probability map the scale model produces for blob_roi."""
    return (255 - blob_roi).astype(np.uint8)


def manifest_line(uid, det_success="x", scale_success="x", scale_dark=10, scale_light=200,
                  filename=None, sample_id=1, sample_name="sampleA"):
    """One rois.tsv line."""
    if filename is None:
        filename = f"roi_{uid}.jpg"
    return "\t".join([
        str(uid), filename, str(sample_id), sample_name,
        det_success, scale_success, str(scale_dark), str(scale_light),
    ]) + "\n"


@pytest.fixture
def output_dir(tmp_path):
    """Empty output directory with a sources/ subdirectory."""
    out = tmp_path / "output"
    (out / "sources").mkdir(parents=True)
    return out


@pytest.fixture
def make_dataset(output_dir, blob_roi):
    """
    Factory writing rois.tsv and sources/<uid>.jpg.

    Usage:
        make_dataset([1, 2, 3])
        make_dataset([7], overrides={7: {"det_success": "."}})
    """
    def _make(uids, overrides=None, roi=None):
        overrides = overrides or {}
        image = blob_roi if roi is None else roi
        lines = []
        for uid in uids:
            lines.append(manifest_line(uid, **overrides.get(uid, {})))
            cv2.imwrite(str(output_dir / "sources" / f"{uid}.jpg"), image)
        (output_dir / "rois.tsv").write_text("".join(lines))
        return output_dir
    return _make


@pytest.fixture
def run_args(model_path):
    """Factory for command-line argument lists."""
    def _args(out, *extra):
        return ["--model", str(model_path), "--device", "cpu", "--no-progress",
                *[str(e) for e in extra], str(out)]
    return _args
