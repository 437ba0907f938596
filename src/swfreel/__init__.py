"""swfreel: convert legacy Flash (SWF) animations to MP4."""

__version__ = "0.3.0"
