"""Fast-path candidate extraction - zero oracle cost."""

from spanlabel.extraction.extractor import FastExtractor, SymbolicExtractor, select_non_overlapping
from spanlabel.extraction.vocabulary import extract_closed_vocabulary, extract_role

__all__ = [
    "FastExtractor",
    "SymbolicExtractor",
    "select_non_overlapping",
    "extract_closed_vocabulary",
    "extract_role",
]
