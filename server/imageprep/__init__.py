"""SEO metadata generation for batches of uploaded images."""

__version__ = "0.1.0"
