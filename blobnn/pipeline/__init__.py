"""
Pipeline orchestration for blobnn.

Submodules:
    cli: Argument parser construction and postprocessing
    runner: Run context, sequential per-ROI loop, exit codes
"""
