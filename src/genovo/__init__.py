"""Find transcripts enriched for de novo point mutations."""

__version__ = "0.1.0"
