"""Chunking of extracted page text into bounded, overlapping slices."""

from .chunker import PageText, TextChunk, TextChunker

__all__ = ["PageText", "TextChunk", "TextChunker"]
