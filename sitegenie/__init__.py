"""SiteGenie: website knowledge bases with retrieval-augmented answers."""

__version__ = "0.3.0"
