"""
Repository ingestion and hybrid code search backed by Vespa.
"""

from .version import __version__

__all__ = ["__version__"]
