"""
Test suite for the backend application.

Tests mirror the source layout: tests/services/ covers the conversion
pipeline, tests/test_audio_endpoints.py covers the HTTP surface.
"""

import sys
import os

# Add parent directory to path so tests can import from backend modules
_backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)
