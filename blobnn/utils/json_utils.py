"""JSON utilities: numpy-safe encoding, NaN/Inf sanitization, and atomic writes.

Used for the run snapshot written next to the ledgers; numpy scalars from the
statistics (means, counts) can end up in it.
"""

import json
import math
import os
import tempfile
from pathlib import Path

import numpy as np


class NumpyEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy types.

    Usage::

        json.dump(data, f, cls=NumpyEncoder)
    """

    def default(self, obj):
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            v = float(obj)
            if math.isnan(v) or math.isinf(v):
                return None
            return v
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def sanitize_for_json(obj):
    """Recursively replace NaN/inf with None in nested structures.

    ``json.dump(default=)`` only fires for non-serializable types, and a
    Python ``float('nan')`` is serializable (as the non-standard ``NaN``
    token), so the structure has to be walked.
    """
    if isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, (float, np.floating)):
        v = float(obj)
        return None if (math.isnan(v) or math.isinf(v)) else v
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.ndarray):
        return sanitize_for_json(obj.tolist())
    return obj


def atomic_write_text(text, filepath, encoding='utf-8', errors='strict'):
    """Write text atomically: temp file in the same directory + os.replace().

    The target either keeps its previous content or holds the complete new
    content; a crash mid-write never leaves a truncated file behind. Newlines
    are written untranslated.

    Args:
        text: Full file content.
        filepath: Target path (str or Path).
        encoding: Text encoding (default: utf-8).
        errors: Encoding error handler; 'surrogateescape' round-trips bytes
            that did not decode on read.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=filepath.parent, prefix=f".{filepath.name}.", suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding=encoding, errors=errors, newline='') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, filepath)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_json_dump(data, filepath, cls=NumpyEncoder, sanitize=True):
    """Write JSON atomically (see ``atomic_write_text``).

    Args:
        data: Python object to serialize.
        filepath: Target path (str or Path).
        cls: JSON encoder class (default: NumpyEncoder).
        sanitize: If True, replace NaN/inf with None first (default: True).
    """
    if sanitize:
        data = sanitize_for_json(data)
    atomic_write_text(json.dumps(data, cls=cls, indent=2) + "\n", filepath)
