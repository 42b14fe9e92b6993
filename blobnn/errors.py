"""
Exception types raised by the blobnn pipeline.

Every exception here is fatal for a run: the entry point reports it and exits
non-zero without touching the ledgers. Per-record conditions (upstream
detection failures, statistics that fail the log-domain guards) are not
exceptions and never reach this module.
"""


class BlobnnError(Exception):
    """Base class for all fatal pipeline errors."""
    pass


class ConfigValidationError(BlobnnError):
    """Raised when configuration validation fails."""
    pass


class ManifestError(BlobnnError):
    """Raised when rois.tsv is missing or contains an invalid row."""
    pass


class ModelLoadError(BlobnnError):
    """Raised when the TorchScript model artifact is missing or unloadable."""
    pass


class ModelContractError(BlobnnError):
    """Raised when the model output is not one batch element, one channel."""
    pass


class ModelRuntimeError(BlobnnError):
    """Raised when device transfer or the forward pass fails."""
    pass


class LedgerError(BlobnnError):
    """Raised when a prior ledger row cannot be keyed by uid."""
    pass
