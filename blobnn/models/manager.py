"""
Loading and execution of the blob segmentation model.

The model is an opaque TorchScript artifact: one grayscale ROI in, one
per-pixel foreground probability map in [0, 1] out. Its compatibility
contract is fixed and checked before any record is processed:

- input is a float32 tensor shaped (1, 1, H, W) holding the *inverted* ROI
  (the network was trained on blobs brighter than their surroundings, while
  the raw captures show them darker);
- output is a tensor shaped (1, 1, H, W): one batch element, one channel,
  same spatial size as the input.

Usage:
    from blobnn.models import SegmentationModel, select_device

    device = select_device("auto")
    with SegmentationModel("model.pt", device=device) as model:
        model.verify_contract(height, width)
        prob_map = model.predict(roi)  # (H, W) uint8
"""

import gc
from pathlib import Path
from typing import Dict, Any, List, Union

import numpy as np
import torch

from blobnn.errors import (
    ConfigValidationError,
    ModelContractError,
    ModelLoadError,
    ModelRuntimeError,
)
from blobnn.utils.logging import get_logger

logger = get_logger(__name__)

DEVICE_CHOICES = ("auto", "cpu", "cuda")


# =============================================================================
# DEVICE SELECTION
# =============================================================================

def probe_accelerator() -> Dict[str, Any]:
    """
    Probe CUDA capability.

    Accelerated execution requires both checks to pass: a CUDA device is
    visible, and the cuDNN runtime is usable.

    Returns:
        Dict with keys cuda_available, cudnn_available, device_count, usable
    """
    cuda_available = bool(torch.cuda.is_available())
    cudnn_available = bool(cuda_available and torch.backends.cudnn.is_available())
    device_count = torch.cuda.device_count() if cuda_available else 0
    return {
        'cuda_available': cuda_available,
        'cudnn_available': cudnn_available,
        'device_count': device_count,
        'usable': cuda_available and cudnn_available,
    }


def describe_accelerator(probe: Dict[str, Any]) -> List[str]:
    """Human-readable lines for an accelerator probe result."""
    lines = []
    if probe['cuda_available']:
        lines.append("cuda available on this device.")
    else:
        lines.append("no gpu or no working cuda driver installed.")
    if probe['cuda_available']:
        if probe['cudnn_available']:
            lines.append("cudnn available on this device.")
        else:
            lines.append("cudnn runtime not usable on this device.")
    if probe['usable']:
        lines.append(f"found {probe['device_count']} available gpu(s) installed on this device.")
    return lines


def select_device(preference: str = "auto") -> torch.device:
    """
    Choose the device for the whole run.

    Args:
        preference: 'auto' (CUDA when the probe passes, otherwise CPU),
            'cpu', or 'cuda' (CUDA required)

    Returns:
        torch.device

    Raises:
        ConfigValidationError: Unknown preference
        ModelRuntimeError: 'cuda' requested but the probe failed
    """
    if preference not in DEVICE_CHOICES:
        raise ConfigValidationError(
            f"device must be one of {DEVICE_CHOICES}, got {preference!r}"
        )
    if preference == "cpu":
        return torch.device("cpu")

    probe = probe_accelerator()
    for line in describe_accelerator(probe):
        logger.info(line)

    if probe['usable']:
        return torch.device("cuda")
    if preference == "cuda":
        raise ModelRuntimeError("cuda was requested but the accelerator probe failed")
    return torch.device("cpu")


# =============================================================================
# INPUT / OUTPUT CONVERSION
# =============================================================================

def invert_roi(roi: np.ndarray) -> np.ndarray:
    """Photometric inversion: value -> max - value for the ROI's dtype."""
    if np.issubdtype(roi.dtype, np.integer):
        max_val = np.iinfo(roi.dtype).max
    else:
        max_val = 1.0
    return (max_val - roi).astype(roi.dtype)


def roi_to_tensor(roi: np.ndarray) -> torch.Tensor:
    """Inverted ROI as a float32 (1, 1, H, W) tensor, values not rescaled."""
    if roi.ndim != 2:
        raise ValueError(f"Expected a single-channel (H, W) ROI, got shape {roi.shape}")
    inverted = np.ascontiguousarray(invert_roi(roi))
    return torch.from_numpy(inverted).to(torch.float32).unsqueeze(0).unsqueeze(0)


def output_to_map(output: torch.Tensor) -> np.ndarray:
    """(1, 1, H, W) output in [0, 1] -> (H, W) uint8, scaled, clamped, truncated."""
    out = output.detach().squeeze(0).squeeze(0)
    out = out.mul(255).clamp(0, 255).to(torch.uint8)
    return out.cpu().numpy()


def check_output_contract(output: Any, height: int, width: int) -> None:
    """
    Enforce the single-batch, single-channel output contract.

    Raises:
        ModelContractError: Output is not a (1, 1, height, width) tensor
    """
    if not isinstance(output, torch.Tensor):
        raise ModelContractError(
            f"model must return a single tensor, got {type(output).__name__}"
        )
    expected = (1, 1, height, width)
    if tuple(output.shape) != expected:
        raise ModelContractError(
            f"model output shape {tuple(output.shape)} does not match {expected}: "
            "exactly one batch element and one output channel are required"
        )


# =============================================================================
# MODEL WRAPPER
# =============================================================================

class SegmentationModel:
    """
    TorchScript segmentation model bound to one device for a whole run.

    The model is loaded lazily on first use. Device transfer and inference
    failures are fatal (ModelRuntimeError); there is no per-ROI fallback.

    Attributes:
        model_path: Path to the TorchScript artifact
        device: Torch device for inference
    """

    def __init__(self, model_path: Union[str, Path], device: Union[str, torch.device] = "cpu"):
        self.model_path = Path(model_path)
        if isinstance(device, str):
            self.device = torch.device(device)
        else:
            self.device = device
        self._model = None
        self._verified_shapes = set()

    @property
    def model(self):
        """The loaded TorchScript module (lazy loaded)."""
        if self._model is None:
            self._load()
        return self._model

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def _load(self):
        if not self.model_path.is_file():
            raise ModelLoadError(f"pytorch model not found: {self.model_path}")

        logger.info(f"Loading model file from {self.model_path}...")
        try:
            module = torch.jit.load(str(self.model_path), map_location="cpu")
        except (RuntimeError, ValueError, OSError) as e:
            raise ModelLoadError(f"invalid TorchScript model {self.model_path}: {e}") from e
        logger.info("Model file loaded successfully")

        logger.info(f"Transporting model to {self.device}")
        try:
            module.eval()
            module.to(self.device)
        except RuntimeError as e:
            raise ModelRuntimeError(f"failed to move model to {self.device}: {e}") from e

        self._model = module

    def load(self) -> "SegmentationModel":
        """Load eagerly so a bad artifact fails before any record is processed."""
        if self._model is None:
            self._load()
        return self

    def _forward(self, tensor: torch.Tensor) -> Any:
        try:
            with torch.inference_mode():
                return self.model(tensor.to(self.device))
        except RuntimeError as e:
            raise ModelRuntimeError(f"inference failed on {self.device}: {e}") from e

    def verify_contract(self, height: int, width: int) -> None:
        """
        Run one probe pass on a blank (height, width) input and check the
        output contract. Call before processing any record.

        Raises:
            ModelContractError: Output is not (1, 1, height, width)
            ModelRuntimeError: The probe pass failed
        """
        if (height, width) in self._verified_shapes:
            return
        probe = torch.zeros((1, 1, height, width), dtype=torch.float32)
        check_output_contract(self._forward(probe), height, width)
        self._verified_shapes.add((height, width))
        logger.debug(f"Model output contract verified for {width}x{height} input")

    def predict(self, roi: np.ndarray) -> np.ndarray:
        """
        Foreground-likelihood map for one grayscale ROI.

        Args:
            roi: (H, W) grayscale raster as captured (not inverted)

        Returns:
            (H, W) uint8 map in [0, 255]
        """
        height, width = roi.shape[:2]
        output = self._forward(roi_to_tensor(roi))
        check_output_contract(output, height, width)
        return output_to_map(output)

    def cleanup(self):
        """Release the model and free accelerator memory."""
        self._model = None
        self._verified_shapes.clear()
        gc.collect()
        if self.device.type == "cuda" and torch.cuda.is_available():
            torch.cuda.empty_cache()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False

    def __repr__(self) -> str:
        state = "loaded" if self.is_loaded else "not loaded"
        return f"SegmentationModel(path={self.model_path}, device={self.device}, {state})"


__all__ = [
    'SegmentationModel',
    'probe_accelerator',
    'describe_accelerator',
    'select_device',
    'invert_roi',
    'roi_to_tensor',
    'output_to_map',
    'check_output_contract',
    'DEVICE_CHOICES',
]
