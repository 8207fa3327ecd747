"""
Peptide hit results processing: annotation and statistics for search engine results.
"""

__version__ = "0.1.0"
