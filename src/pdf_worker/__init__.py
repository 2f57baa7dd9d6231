"""
PDF Worker - page assembly and ephemeral artifact delivery.

Builds new PDF documents from pages of uploaded sources (merge, split,
organize, rotate, delete pages) and hands the results out through
short-lived download handles.
"""

from pdf_worker.version import __version__

# API module is available but not exported by default
# Import explicitly: from pdf_worker.api import create_app

__all__ = ["__version__"]
