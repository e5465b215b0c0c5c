"""
Root conftest.py — adds monitor/ to sys.path so tests can import its modules
as bare names (e.g. `from bunch_detector import ...`) matching how the
monitor itself runs.
"""

import sys
import os

# Insert the monitor directory so modules like normalizer, refresh, etc. are importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "monitor"))
