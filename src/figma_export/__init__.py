"""
Package initialization for figma_export.

This package exports the frames of Figma files as PDF, PNG, JPG or SVG
files, one output per page (PDF) or per frame (images).

Modules:
    - models: Data classes for files, pages, layers and export options
    - clusterer: Reading-order sorting of frames on a canvas
    - fetcher: Authenticated requests to the Figma API (httpx)
    - assembler: PDF merging (pypdf + PyMuPDF fallback) and image writing
    - pipeline: High-level API orchestrating the above modules
    - config: Config file and environment settings for the CLI
"""

from .assembler import PdfAssembler
from .clusterer import sort_frames
from .errors import (
    AssemblyError,
    ConfigError,
    FigmaExportError,
    InvalidFormatError,
    InvalidScaleError,
    RequestError,
    TransportError,
)
from .fetcher import RemoteFetcher
from .models import (
    Box,
    ExportFormat,
    ExportOptions,
    FileDetails,
    Layer,
    Page,
)
from .pipeline import export_file, export_project

__all__ = [
    # Data classes
    "Box",
    "Layer",
    "Page",
    "FileDetails",
    "ExportFormat",
    "ExportOptions",
    # Core functions
    "sort_frames",
    "export_file",
    "export_project",
    "RemoteFetcher",
    "PdfAssembler",
    # Errors
    "FigmaExportError",
    "InvalidFormatError",
    "InvalidScaleError",
    "RequestError",
    "TransportError",
    "AssemblyError",
    "ConfigError",
]
