"""
ProseCheck Tests Package
========================
Test suite for the checking pipeline.

Run all tests: python3 -m pytest tests/ -v
Run specific: python3 -m pytest tests/test_chunker.py -v
"""

__version__ = "1.0.0"
