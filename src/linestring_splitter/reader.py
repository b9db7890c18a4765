"""Input layers: shapefile reader with CRS auto-detection and shape type checks."""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

import shapefile
from pyproj import CRS

from .errors import InputError
from .models import Feature, FieldDefinition, LayerMetadata

logger = logging.getLogger(__name__)

LINE_SHAPE_TYPES = (shapefile.POLYLINE, shapefile.POLYLINEZ, shapefile.POLYLINEM)
KML_SUFFIXES = (".kml", ".kmz")


class InputLayer:
    """A layer of (multi)linestring features that can be streamed repeatedly."""

    metadata: LayerMetadata

    def features(self) -> Iterator[Feature]:
        """Yield every feature, starting from the beginning of the layer."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class ShapefileLayer(InputLayer):
    """Streams POLYLINE records of an open ``shapefile.Reader``."""

    def __init__(self, sf: shapefile.Reader, metadata: LayerMetadata):
        self._sf = sf
        self.metadata = metadata

    def features(self) -> Iterator[Feature]:
        try:
            for fid, shape_rec in enumerate(self._sf.iterShapeRecords()):
                yield _to_feature(fid, shape_rec.shape, shape_rec.record.as_dict())
        except (shapefile.ShapefileException, struct.error, EOFError, OSError) as exc:
            raise InputError(f"Reading features of {self.metadata.name} failed: {exc}") from exc

    def close(self) -> None:
        self._sf.close()


def detect_crs(
    prj_source: str | Path | None,
) -> tuple[int | None, str | None, bool | None, bool, str | None]:
    """Parse CRS from a .prj WKT string or file path.

    Returns (epsg_code, crs_name, is_projected, is_geographic, wkt), or
    (None, None, None, False, None) when there is no usable CRS.
    """
    unknown = (None, None, None, False, None)
    if prj_source is None:
        return unknown

    wkt = prj_source if isinstance(prj_source, str) else ""
    if isinstance(prj_source, Path):
        if not prj_source.exists():
            return unknown
        wkt = prj_source.read_text()

    if not wkt.strip():
        return unknown

    try:
        crs = CRS.from_wkt(wkt)
    except Exception:
        logger.warning("Could not parse coordinate reference system, assuming planar coordinates")
        return unknown

    return crs.to_epsg(), crs.name, crs.is_projected, crs.is_geographic, wkt


def read_shapefile(
    shp_path: str | Path | None = None,
    *,
    shp_file: BinaryIO | None = None,
    shx_file: BinaryIO | None = None,
    dbf_file: BinaryIO | None = None,
    prj_wkt: str | None = None,
    name: str = "lines",
) -> ShapefileLayer:
    """Open a polyline shapefile as an input layer.

    Supports two modes:
    - File path: pass ``shp_path`` (the .prj is auto-discovered)
    - File objects: pass ``shp_file``, ``shx_file``, ``dbf_file``, and optionally ``prj_wkt``
    """
    try:
        if shp_path is not None:
            shp_path = Path(shp_path)
            sf = shapefile.Reader(str(shp_path))
            name = shp_path.stem if shp_path.suffix.lower() == ".shp" else shp_path.name
            prj_path = shp_path.with_suffix(".prj")
            if not prj_path.exists():
                # shp_path might already lack an extension (pyshp convention)
                prj_path = Path(str(shp_path) + ".prj")
            crs_info = detect_crs(prj_path if prj_path.exists() else None)
        elif shp_file is not None:
            sf = shapefile.Reader(shp=shp_file, shx=shx_file, dbf=dbf_file)
            crs_info = detect_crs(prj_wkt)
        else:
            raise InputError("Provide either shp_path or shp_file")
    except (shapefile.ShapefileException, OSError) as exc:
        raise InputError(f"Open of {shp_path or 'uploaded shapefile'} failed: {exc}") from exc

    if sf.shapeType not in LINE_SHAPE_TYPES:
        shape_type_name = sf.shapeTypeName
        sf.close()
        raise InputError(
            f"Unsupported shape type: {shape_type_name}. "
            "Only linestring and multilinestring geometries are supported."
        )

    epsg, crs_name, is_projected, is_geographic, wkt = crs_info
    fields = [
        FieldDefinition(name=f[0], field_type=f[1], size=int(f[2]), decimal=int(f[3]))
        for f in sf.fields[1:]  # skip DeletionFlag
    ]
    metadata = LayerMetadata(
        name=name,
        geometry_type=sf.shapeTypeName,
        crs_epsg=epsg,
        crs_name=crs_name,
        crs_wkt=wkt,
        is_projected=is_projected,
        is_geographic=is_geographic,
        fields=fields,
        num_features=len(sf),
    )
    return ShapefileLayer(sf, metadata)


def open_input(path: str | Path) -> InputLayer:
    """Open an input dataset by path, picking the reader from the file suffix."""
    path = Path(path)
    if path.suffix.lower() in KML_SUFFIXES:
        from .kml_reader import read_kmz

        if not path.exists():
            raise InputError(f"Open of {path} failed: no such file")
        return read_kmz(str(path))

    if not path.exists() and not path.with_suffix(".shp").exists():
        raise InputError(f"Open of {path} failed: no such file")
    return read_shapefile(path)


def _to_feature(fid: int, shape: shapefile.Shape, attributes: dict) -> Feature:
    """Split a shape's vertices into its parts. Z and M values are dropped."""
    if shape.shapeType == shapefile.NULL or not shape.points:
        return Feature(fid=fid, attributes=attributes, lines=[])

    part_starts = list(shape.parts)
    lines = []
    for part_idx, start in enumerate(part_starts):
        end = part_starts[part_idx + 1] if part_idx + 1 < len(part_starts) else len(shape.points)
        lines.append([(float(x), float(y)) for x, y in (p[:2] for p in shape.points[start:end])])
    return Feature(fid=fid, attributes=attributes, lines=lines, multi=len(lines) > 1)
