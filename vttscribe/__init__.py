"""vttscribe: lecture transcripts from captured WebVTT segments."""

__version__ = "1.0.0"
