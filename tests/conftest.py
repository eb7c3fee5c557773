"""Configuration file for pytest."""

import sys
from pathlib import Path

# Add the project root and src directory to the path so tests can import modules correctly
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))
sys.path.insert(0, str(project_root))
