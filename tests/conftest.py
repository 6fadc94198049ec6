import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC_STR = str(ROOT / "src")
if SRC_STR not in sys.path:
    sys.path.insert(0, SRC_STR)


@pytest.fixture
def profiles_dir() -> Path:
    """Directory holding the bundled feedback profiles."""
    return ROOT / "profiles"
