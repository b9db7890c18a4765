"""FastAPI server: upload a line dataset, download its split linestrings."""

from __future__ import annotations

import io
import tempfile
import zipfile
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse

from .errors import ConfigurationError, InputError, OutputError
from .kml_reader import read_kmz
from .models import DEFAULT_MAX_LENGTH, DEFAULT_MIN_LENGTH, DEFAULT_TRANSACTION_SIZE, Options, RunSummary
from .reader import InputLayer, read_shapefile
from .pipeline import split_layer

app = FastAPI(title="Linestring Splitter", version="0.1.0")

COMPANION_EXTS = {".shp", ".shx", ".dbf", ".prj"}
OUTPUT_DRIVERS = {"shapefile": "ESRI Shapefile", "csv": "CSV"}


@app.post("/split")
async def split_upload(
    files: list[UploadFile],
    min_length: float = Query(DEFAULT_MIN_LENGTH),
    max_length: float = Query(DEFAULT_MAX_LENGTH),
    geographic: bool = Query(False),
    transaction_size: int = Query(DEFAULT_TRANSACTION_SIZE),
    format: str = Query("shapefile", pattern="^(shapefile|csv)$"),
):
    """Split the uploaded line dataset and return the result.

    Accepts:
    - A single .kmz or .kml file
    - A single .zip containing shapefile components
    - Multiple files (.shp, .shx, .dbf, and optionally .prj)

    Returns a zipped shapefile, or a CSV with a WKT column when ``format=csv``.
    """
    try:
        options = Options.build(
            min_length=min_length,
            max_length=max_length,
            geographic=geographic,
            transaction_size=transaction_size,
            output_format=OUTPUT_DRIVERS[format],
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    filename = (files[0].filename or "").lower() if len(files) == 1 else ""

    with tempfile.TemporaryDirectory() as work_dir:
        work_dir = Path(work_dir)
        try:
            if filename.endswith((".kmz", ".kml")):
                layer = await _handle_kmz(files[0])
            elif filename.endswith(".zip"):
                layer = await _handle_zip(files[0], work_dir)
            else:
                layer = await _handle_multi_file(files)

            out_dir = work_dir / "out"
            out_dir.mkdir()
            with layer:
                summary = split_layer(layer, out_dir, options)
        except InputError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except OutputError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        if format == "csv":
            return _csv_response(out_dir / f"{layer.metadata.name}.csv", summary)
        return _zip_response(out_dir, layer.metadata.name, summary)


async def _handle_zip(upload: UploadFile, work_dir: Path) -> InputLayer:
    """Extract a shapefile from a zip archive and open it."""
    content = await upload.read()
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as zf:
            extract_dir = work_dir / "in"
            zf.extractall(extract_dir)
    except zipfile.BadZipFile as exc:
        raise HTTPException(status_code=400, detail=f"Invalid zip archive: {exc}") from exc

    shp_files = sorted(extract_dir.rglob("*.shp"))
    if not shp_files:
        raise HTTPException(status_code=400, detail="No .shp file found in zip archive")
    return read_shapefile(shp_files[0])


async def _handle_kmz(upload: UploadFile) -> InputLayer:
    """Open a KMZ or KML file upload."""
    content = await upload.read()
    return read_kmz(io.BytesIO(content), name=Path(upload.filename or "lines").stem)


async def _handle_multi_file(files: list[UploadFile]) -> InputLayer:
    """Open a shapefile from multiple uploaded component files."""
    file_map: dict[str, bytes] = {}
    name = "lines"
    for f in files:
        ext = Path(f.filename or "").suffix.lower()
        if ext in COMPANION_EXTS:
            file_map[ext] = await f.read()
            if ext == ".shp":
                name = Path(f.filename).stem

    if ".shp" not in file_map:
        raise HTTPException(status_code=400, detail="Missing required .shp file")
    if ".dbf" not in file_map:
        raise HTTPException(status_code=400, detail="Missing required .dbf file")

    shp_file = io.BytesIO(file_map[".shp"])
    shx_file = io.BytesIO(file_map[".shx"]) if ".shx" in file_map else None
    dbf_file = io.BytesIO(file_map[".dbf"]) if ".dbf" in file_map else None

    prj_wkt = None
    if ".prj" in file_map:
        prj_wkt = file_map[".prj"].decode("utf-8", errors="replace")

    return read_shapefile(
        shp_file=shp_file,
        shx_file=shx_file,
        dbf_file=dbf_file,
        prj_wkt=prj_wkt,
        name=name,
    )


def _summary_headers(summary: RunSummary) -> dict[str, str]:
    return {
        "X-Features-Read": str(summary.features_read),
        "X-Lines-Skipped": str(summary.lines_skipped),
        "X-Segments-Written": str(summary.segments_written),
    }


def _zip_response(out_dir: Path, name: str, summary: RunSummary) -> StreamingResponse:
    """Zip the output shapefile components into a download."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(out_dir.iterdir()):
            zf.write(path, path.name)
    buf.seek(0)
    return StreamingResponse(
        buf,
        media_type="application/zip",
        headers={"Content-Disposition": f"attachment; filename={name}_split.zip", **_summary_headers(summary)},
    )


def _csv_response(csv_path: Path, summary: RunSummary) -> StreamingResponse:
    content = csv_path.read_bytes()
    return StreamingResponse(
        io.BytesIO(content),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={csv_path.name}", **_summary_headers(summary)},
    )
