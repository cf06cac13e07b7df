"""linkvault - background metadata refresh for stored bookmarks."""

__version__ = "0.1.0"
