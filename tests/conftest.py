"""Pytest configuration.

This project uses a `src/` package layout imported as `src...`. For local test
runs without an editable install, we add the repository root to `sys.path`.
"""

from __future__ import annotations

import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))
