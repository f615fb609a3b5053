"""
Impact intake pipeline.

Validation engine and submission processing pipeline for child-protection
field reports.
"""

__version__ = "0.1.0"
