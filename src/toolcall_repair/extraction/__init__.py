"""Candidate location, generic repair, and schema-aware reconstruction."""

from .cascade import GenericRepairCascade
from .json_extract import extract_json
from .locator import BlockLocator, scan_balanced
from .reconstruct import Reconstruction, SchemaAwareReconstructor

__all__ = [
    "BlockLocator",
    "GenericRepairCascade",
    "Reconstruction",
    "SchemaAwareReconstructor",
    "extract_json",
    "scan_balanced",
]
