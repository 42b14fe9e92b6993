#!/usr/bin/env python3
"""
blobnn: segment blobs in pre-extracted ROIs and maintain the raw/stats ledgers.

Usage:
    # Process every ROI in the output directory
    python run_blobnn.py --model blob.pt /path/to/output

    # Recompute uids 4..6 only, keeping every other ledger row as it is
    python run_blobnn.py --start 4 --end 6 --model blob.pt /path/to/output

    # Stricter threshold, CPU only
    python run_blobnn.py --cutoff 200 --device cpu --model blob.pt /path/to/output

    # Show the accelerator capability report
    python run_blobnn.py --show-device
"""

import sys

from blobnn.pipeline.runner import main


if __name__ == '__main__':
    sys.exit(main())
