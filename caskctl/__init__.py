"""caskctl — declarative cask descriptor interpreter."""

__version__ = "0.1.0"
