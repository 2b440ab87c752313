"""AlbumHQ - family photo and video albums."""

__version__ = "1.0.0"
