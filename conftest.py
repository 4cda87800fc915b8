"""pytest configuration: put src/ on sys.path so tests import otpkeep without installing."""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))
