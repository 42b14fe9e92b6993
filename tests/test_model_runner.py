"""
Tests for blobnn/models/manager.py.

Covers ROI inversion and tensor layout, output normalization, the output
contract, TorchScript loading errors, and device selection.

Run with: pytest tests/test_model_runner.py -v
"""

import numpy as np
import pytest
import torch

from blobnn.errors import (
    ConfigValidationError,
    ModelContractError,
    ModelLoadError,
    ModelRuntimeError,
)
from blobnn.models import manager
from blobnn.models.manager import (
    SegmentationModel,
    check_output_contract,
    describe_accelerator,
    invert_roi,
    output_to_map,
    roi_to_tensor,
    select_device,
)


class TestInputConversion:

    def test_invert_uint8(self):
        roi = np.array([[0, 30, 255]], dtype=np.uint8)
        assert invert_roi(roi).tolist() == [[255, 225, 0]]

    def test_invert_uint16(self):
        roi = np.array([[0, 65535]], dtype=np.uint16)
        assert invert_roi(roi).tolist() == [[65535, 0]]

    def test_tensor_layout(self):
        roi = np.zeros((20, 30), dtype=np.uint8)
        tensor = roi_to_tensor(roi)
        assert tuple(tensor.shape) == (1, 1, 20, 30)
        assert tensor.dtype == torch.float32

    def test_tensor_not_rescaled(self):
        roi = np.array([[30, 200]], dtype=np.uint8)
        assert roi_to_tensor(roi).flatten().tolist() == [225.0, 55.0]

    def test_multichannel_rejected(self):
        with pytest.raises(ValueError):
            roi_to_tensor(np.zeros((4, 4, 3), dtype=np.uint8))


class TestOutputConversion:

    def test_scale_and_truncate(self):
        output = torch.tensor([[[[0.0, 0.5, 1.0]]]])
        assert output_to_map(output).tolist() == [[0, 127, 255]]

    def test_clamped(self):
        output = torch.tensor([[[[-0.5, 2.0]]]])
        result = output_to_map(output)
        assert result.dtype == np.uint8
        assert result.tolist() == [[0, 255]]

    def test_contract_accepts_single_channel(self):
        check_output_contract(torch.zeros(1, 1, 8, 9), 8, 9)

    @pytest.mark.parametrize("shape", [(1, 2, 8, 9), (2, 1, 8, 9), (1, 8, 9), (1, 1, 9, 8)])
    def test_contract_rejects(self, shape):
        with pytest.raises(ModelContractError):
            check_output_contract(torch.zeros(*shape), 8, 9)

    def test_contract_rejects_non_tensor(self):
        with pytest.raises(ModelContractError):
            check_output_contract((torch.zeros(1, 1, 8, 9),), 8, 9)


class TestSegmentationModel:
    """Loading and running a TorchScript artifact."""

    def test_lazy_load(self, model_path):
        model = SegmentationModel(model_path)
        assert not model.is_loaded
        model.load()
        assert model.is_loaded
        assert "not loaded" not in repr(model)

    def test_predict(self, model_path, blob_roi):
        with SegmentationModel(model_path, device="cpu") as model:
            prob = model.predict(blob_roi)
        assert prob.shape == blob_roi.shape
        assert prob.dtype == np.uint8
        assert prob[64, 64] >= 224
        assert prob[0, 0] <= 55

    def test_verify_contract(self, model_path):
        model = SegmentationModel(model_path)
        model.verify_contract(32, 48)
        model.verify_contract(32, 48)

    def test_two_channel_output_rejected(self, two_channel_model_path, blob_roi):
        model = SegmentationModel(two_channel_model_path)
        with pytest.raises(ModelContractError):
            model.verify_contract(32, 32)
        with pytest.raises(ModelContractError):
            model.predict(blob_roi)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ModelLoadError):
            SegmentationModel(tmp_path / "nope.pt").load()

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "bad.pt"
        path.write_bytes(b"this is not a torchscript archive")
        with pytest.raises(ModelLoadError):
            SegmentationModel(path).load()

    def test_cleanup_releases_model(self, model_path):
        model = SegmentationModel(model_path).load()
        model.cleanup()
        assert not model.is_loaded


class TestDeviceSelection:

    def test_cpu(self):
        assert select_device("cpu") == torch.device("cpu")

    def test_unknown(self):
        with pytest.raises(ConfigValidationError):
            select_device("tpu")

    def test_auto_falls_back_to_cpu(self, monkeypatch):
        monkeypatch.setattr(manager.torch.cuda, "is_available", lambda: False)
        assert select_device("auto") == torch.device("cpu")

    def test_cuda_required_but_unusable(self, monkeypatch):
        monkeypatch.setattr(manager.torch.cuda, "is_available", lambda: False)
        with pytest.raises(ModelRuntimeError):
            select_device("cuda")

    def test_describe_without_gpu(self):
        probe = {'cuda_available': False, 'cudnn_available': False, 'device_count': 0, 'usable': False}
        assert describe_accelerator(probe) == ["no gpu or no working cuda driver installed."]

    def test_describe_with_gpu(self):
        probe = {'cuda_available': True, 'cudnn_available': True, 'device_count': 2, 'usable': True}
        lines = describe_accelerator(probe)
        assert len(lines) == 3
        assert "2" in lines[-1]
