"""SWF → MP4 conversion: frame-rate detection, assembly and the end-to-end pipeline."""
from swfreel.conversion.pipeline import convert_swf

__all__ = ["convert_swf"]
