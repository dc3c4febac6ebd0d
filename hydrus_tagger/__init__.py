"""
Hydrus Auto-Tagger

Runs images stored in a Hydrus client through a booru-style multi-label
tagging model and commits the resulting tags back through the Hydrus
Client API.
"""

__version__ = "1.0.0"
__author__ = "Hydrus Auto-Tagger Team"
