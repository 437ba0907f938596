"""SWF content extraction: JPEXS decompiler plus FFmpeg audio fallback."""
from swfreel.extraction.content import analyze_extracted_content
from swfreel.extraction.extractor import extract_swf

__all__ = ["analyze_extracted_content", "extract_swf"]
