"""
Export pipeline: metadata -> image URLs -> image bytes -> output files.

Files of a project, pages of a file and layers of a page are processed
concurrently. Results are always joined by position, so the returned paths
follow the order of the API listings and not the order in which requests
finish. The first failure aborts the whole export.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Awaitable, Iterable, List, Optional, Sequence, TypeVar
from urllib.parse import quote, urlencode

from .assembler import PdfAssembler, write_image
from .clusterer import sort_frames
from .errors import InvalidScaleError
from .fetcher import RemoteFetcher
from .models import ExportFormat, ExportOptions, FileDetails, Layer, Page


logger = logging.getLogger(__name__)

MAX_SCALE = 4.0

T = TypeVar("T")


def validate_options(options: ExportOptions) -> ExportFormat:
    """
    Check format and scale before anything touches the network.

    Returns:
        The parsed export format

    Raises:
        InvalidFormatError: If the format is not pdf, png, jpg or svg
        InvalidScaleError: If the scale is set and outside (0, 4]
    """
    export_format = ExportFormat.parse(options.format)
    if options.scale is not None and not 0 < options.scale <= MAX_SCALE:
        raise InvalidScaleError(options.scale)
    return export_format


async def gather_in_order(aws: Iterable[Awaitable[T]]) -> List[T]:
    """
    Run awaitables concurrently and return their results in input order.

    On the first failure the remaining tasks are cancelled and awaited
    before the exception propagates, so none keeps using a closed client.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def unique_page_names(pages: Sequence[Page]) -> List[Page]:
    """
    Rename pages whose name repeats to `{name} (n)`.

    Output paths are derived from page names, two canvases with the same
    name would otherwise write to the same file.
    """
    seen: dict[str, int] = {}
    result = []
    for page in pages:
        count = seen.get(page.name, 0) + 1
        seen[page.name] = count
        if count > 1:
            new_name = f"{page.name} ({count})"
            logger.warning("Duplicate page name %r, exporting as %r", page.name, new_name)
            page = replace(page, name=new_name)
        result.append(page)
    return result


def _is_type(node: dict[str, Any], node_type: str) -> bool:
    return str(node.get("type", "")).upper() == node_type


def parse_file_details(key: str, body: dict[str, Any]) -> FileDetails:
    """
    Build FileDetails from a `GET /v1/files/{key}` response.

    Every canvas becomes a page. Only FRAME children are kept as layers,
    sorted into reading order.
    """
    canvases = [
        node for node in body.get("document", {}).get("children", [])
        if _is_type(node, "CANVAS")
    ]
    pages = []
    for canvas in canvases:
        frames = [
            Layer.from_node(node) for node in canvas.get("children", [])
            if _is_type(node, "FRAME")
        ]
        pages.append(Page(
            id=canvas["id"],
            name=canvas.get("name", ""),
            layers=tuple(sort_frames(frames)),
        ))
    return FileDetails(key=key, name=body.get("name", key), pages=tuple(pages))


async def get_file_details(
    fetcher: RemoteFetcher,
    key: str,
    token: str,
    api_url: str,
) -> FileDetails:
    body = await fetcher.fetch_json(f"{api_url}/v1/files/{quote(key)}", token)
    return parse_file_details(key, body)


async def get_project_files(
    fetcher: RemoteFetcher,
    key: str,
    token: str,
    api_url: str,
) -> List[FileDetails]:
    """List the files of a project; pages are not loaded."""
    body = await fetcher.fetch_json(f"{api_url}/v1/projects/{quote(key)}/files", token)
    return [
        FileDetails(key=item["key"], name=item.get("name", item["key"]))
        for item in body.get("files", [])
    ]


async def resolve_image_urls(
    fetcher: RemoteFetcher,
    file_key: str,
    page: Page,
    export_format: ExportFormat,
    scale: Optional[float],
    token: str,
    api_url: str,
) -> Page:
    """
    Ask the API to render all layers of a page with one batched request.

    Returns:
        A copy of the page whose layers carry their image URL. Layers the
        API could not render keep `image_url=None`.
    """
    if not page.layers:
        return page

    params = {
        "ids": ",".join(layer.id for layer in page.layers),
        "format": export_format.value,
    }
    if scale is not None:
        params["scale"] = f"{scale:g}"
    url = f"{api_url}/v1/images/{quote(file_key)}?{urlencode(params, safe=',:')}"

    body = await fetcher.fetch_json(url, token)
    if body.get("err"):
        logger.warning("Render of page %s reported: %s", page.name, body["err"])
    images = body.get("images") or {}

    layers = tuple(replace(layer, image_url=images.get(layer.id)) for layer in page.layers)
    return replace(page, layers=layers)


async def fetch_layer_images(
    fetcher: RemoteFetcher,
    layers: Sequence[Layer],
    token: str,
) -> List[bytes]:
    """Download all rendered layers concurrently, in layer order."""
    return await gather_in_order(
        fetcher.fetch_bytes(layer.image_url, token) for layer in layers
    )


def _safe_name(name: str) -> str:
    return name.replace("/", "_").replace("\\", "_")


def image_file_name(file_name: str, page_name: str, index: int, export_format: ExportFormat) -> str:
    """`{file}-{page}.ext` for the first layer, `{file}-{page}-{n}.ext` after."""
    stem = f"{file_name}-{page_name}"
    if index > 0:
        stem = f"{stem}-{index + 1}"
    return _safe_name(stem) + export_format.extension


def pdf_file_name(file_name: str, page_name: str, first_page_only: bool) -> str:
    stem = file_name if first_page_only else f"{file_name}-{page_name}"
    return _safe_name(stem) + ExportFormat.PDF.extension


async def export_page(
    fetcher: RemoteFetcher,
    details: FileDetails,
    page: Page,
    export_format: ExportFormat,
    options: ExportOptions,
    token: str,
    use_fitz_fallback: bool = True,
) -> List[Path]:
    """Render, download and write one page. Returns the written paths."""
    page = await resolve_image_urls(
        fetcher, details.key, page, export_format, options.scale, token, options.api_url,
    )
    layers = [layer for layer in page.layers if layer.has_image]
    skipped = len(page.layers) - len(layers)
    if skipped:
        logger.warning("Page %s: %d layer(s) produced no image", page.name, skipped)
    if not layers:
        return []

    payloads = await fetch_layer_images(fetcher, layers, token)
    directory = Path(options.directory).resolve()

    match export_format:
        case ExportFormat.PDF:
            assembler = PdfAssembler(use_fitz_fallback=use_fitz_fallback)
            for layer, data in zip(layers, payloads):
                assembler.add(data, name=layer.name)
            output_path = directory / pdf_file_name(details.name, page.name, options.first_page_only)
            logger.info("Writing %d page(s) to %s", assembler.page_count, output_path)
            return [assembler.write(output_path)]
        case ExportFormat.PNG | ExportFormat.JPG | ExportFormat.SVG:
            written = []
            for index, data in enumerate(payloads):
                output_path = directory / image_file_name(details.name, page.name, index, export_format)
                logger.info("Writing %s", output_path)
                written.append(write_image(data, output_path))
            return written
        case _:
            raise AssertionError(f"Unhandled export format: {export_format}")


async def _export_file(
    fetcher: RemoteFetcher,
    file_key: str,
    export_format: ExportFormat,
    options: ExportOptions,
    token: str,
    use_fitz_fallback: bool,
) -> List[Path]:
    details = await get_file_details(fetcher, file_key, token, options.api_url)
    if not details.pages:
        logger.info("File %s has no pages, nothing to export", details.name)
        return []

    pages = details.pages[:1] if options.first_page_only else details.pages
    logger.info("Exporting %d page(s) of %s as %s", len(pages), details.name, export_format.value)

    results = await gather_in_order(
        export_page(fetcher, details, page, export_format, options, token, use_fitz_fallback)
        for page in unique_page_names(pages)
    )
    return [path for paths in results for path in paths]


async def export_file(
    file_key: str,
    options: ExportOptions,
    token: str,
    fetcher: Optional[RemoteFetcher] = None,
    use_fitz_fallback: bool = True,
) -> List[Path]:
    """
    Export every page of a Figma file.

    Args:
        file_key: Key of the Figma file
        options: Output directory, format, scale and page selection
        token: Figma personal access token
        fetcher: Fetcher to use; a new one is created and closed if omitted
        use_fitz_fallback: If True, use PyMuPDF for layer PDFs pypdf rejects

    Returns:
        Absolute paths of the written files in page and layer order

    Raises:
        InvalidFormatError: If the format is not supported (no request is made)
        RequestError: If the API answers with an error status
        TransportError: If the API cannot be reached
    """
    export_format = validate_options(options)
    if fetcher is None:
        async with RemoteFetcher() as own_fetcher:
            return await _export_file(
                own_fetcher, file_key, export_format, options, token, use_fitz_fallback,
            )
    return await _export_file(fetcher, file_key, export_format, options, token, use_fitz_fallback)


async def _export_project(
    fetcher: RemoteFetcher,
    project_key: str,
    options: ExportOptions,
    token: str,
    use_fitz_fallback: bool,
) -> List[Path]:
    files = await get_project_files(fetcher, project_key, token, options.api_url)
    logger.info("Project %s has %d file(s)", project_key, len(files))
    results = await gather_in_order(
        export_file(item.key, options, token, fetcher=fetcher, use_fitz_fallback=use_fitz_fallback)
        for item in files
    )
    outputs = [path for paths in results for path in paths]
    duplicates = {path for path in outputs if outputs.count(path) > 1}
    if duplicates:
        logger.warning(
            "Files of project %s share output names, later exports overwrote: %s",
            project_key, ", ".join(sorted(str(path) for path in duplicates)),
        )
    return outputs


async def export_project(
    project_key: str,
    options: ExportOptions,
    token: str,
    fetcher: Optional[RemoteFetcher] = None,
    use_fitz_fallback: bool = True,
) -> List[Path]:
    """
    Export all files of a Figma project.

    Files are exported concurrently. The returned list concatenates the
    paths of each file in the order of the project listing.
    """
    validate_options(options)
    if fetcher is None:
        async with RemoteFetcher() as own_fetcher:
            return await _export_project(own_fetcher, project_key, options, token, use_fitz_fallback)
    return await _export_project(fetcher, project_key, options, token, use_fitz_fallback)
