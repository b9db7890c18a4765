"""KMZ/KML reader — exposes the line placemarks of a KML document as an input layer.

KMZ is a ZIP archive containing KML. KML coordinates are always WGS84 (EPSG:4326)
in ``longitude,latitude,altitude`` format.
"""

from __future__ import annotations

import io
import zipfile
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from pyproj import CRS

from .errors import InputError
from .models import Coordinate, Feature, FieldDefinition, LayerMetadata
from .reader import InputLayer

KML_NS = "{http://www.opengis.net/kml/2.2}"
KML_FIELDS = [
    FieldDefinition(name="Name", field_type="C", size=254),
    FieldDefinition(name="Description", field_type="C", size=254),
]
UNSUPPORTED_GEOMETRIES = ("Point", "Polygon", "LinearRing", "Model", "Track")


class KmlLayer(InputLayer):
    """Features parsed from a KML document, held in memory."""

    def __init__(self, features: list[Feature], metadata: LayerMetadata):
        self._features = features
        self.metadata = metadata

    def features(self) -> Iterator[Feature]:
        yield from self._features


def read_kmz(file: str | BinaryIO, name: str | None = None) -> KmlLayer:
    """Read a KMZ (or plain KML) file and return its line placemarks as a layer.

    Args:
        file: Path to a .kmz/.kml file, or a file-like object containing KMZ/KML bytes.
        name: Layer name; defaults to the file stem, or "lines" for file objects.
    """
    try:
        data = _read_bytes(file)

        # KMZ is a ZIP; plain KML is XML text
        if _is_zip(data):
            kml_text = _extract_kml_from_kmz(data)
        else:
            kml_text = data.decode("utf-8", errors="replace")

        root = ET.fromstring(kml_text)
    except (OSError, zipfile.BadZipFile, ET.ParseError) as exc:
        raise InputError(f"Open of KML input failed: {exc}") from exc

    features = _extract_features(root)
    multi = any(f.multi for f in features)

    if name is None:
        name = Path(file).stem if isinstance(file, str) else "lines"

    crs = CRS.from_epsg(4326)
    metadata = LayerMetadata(
        name=name,
        geometry_type="MultiLineString" if multi else "LineString",
        crs_epsg=4326,
        crs_name=crs.name,
        crs_wkt=crs.to_wkt("WKT1_ESRI"),
        is_projected=False,
        is_geographic=True,
        fields=list(KML_FIELDS),
        num_features=len(features),
    )
    return KmlLayer(features, metadata)


def _read_bytes(file: str | BinaryIO) -> bytes:
    if isinstance(file, (str, bytes)):
        if isinstance(file, str):
            with open(file, "rb") as f:
                return f.read()
        return file
    return file.read()


def _is_zip(data: bytes) -> bool:
    return data[:4] == b"PK\x03\x04"


def _extract_kml_from_kmz(data: bytes) -> str:
    """Extract the first .kml file from a KMZ (ZIP) archive."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        # Prefer doc.kml, fall back to any .kml
        names = zf.namelist()
        kml_name = None
        for name in names:
            if name.lower() == "doc.kml":
                kml_name = name
                break
        if kml_name is None:
            for name in names:
                if name.lower().endswith(".kml"):
                    kml_name = name
                    break
        if kml_name is None:
            raise InputError("No .kml file found in KMZ archive")
        return zf.read(kml_name).decode("utf-8", errors="replace")


def _extract_features(root: ET.Element) -> list[Feature]:
    """Turn every Placemark into a feature, one linestring per LineString element."""
    features: list[Feature] = []

    for placemark in root.iter(f"{KML_NS}Placemark"):
        lines: list[list[Coordinate]] = []
        is_multi = False

        for elem in placemark.iter():
            tag = elem.tag.rsplit("}", 1)[-1]
            if tag == "MultiGeometry":
                is_multi = True
            elif tag == "LineString":
                coords_elem = elem.find(f"{KML_NS}coordinates")
                if coords_elem is not None and coords_elem.text:
                    lines.append(_parse_coordinates_text(coords_elem.text))
            elif tag in UNSUPPORTED_GEOMETRIES:
                raise InputError(
                    f"cannot work with KML {tag} geometries, only LineString and MultiGeometry of LineString"
                )

        attributes = {
            "Name": _child_text(placemark, "name"),
            "Description": _child_text(placemark, "description"),
        }
        features.append(
            Feature(fid=len(features), attributes=attributes, lines=lines, multi=is_multi or len(lines) > 1)
        )

    return features


def _child_text(elem: ET.Element, tag: str) -> str:
    child = elem.find(f"{KML_NS}{tag}")
    return (child.text or "").strip() if child is not None else ""


def _parse_coordinates_text(text: str) -> list[Coordinate]:
    """Parse a KML ``<coordinates>`` text block.

    Format: ``lon,lat[,alt] lon,lat[,alt] ...`` (whitespace-separated tuples).
    The altitude is dropped.
    """
    points: list[Coordinate] = []
    for token in text.strip().split():
        parts = token.split(",")
        if len(parts) < 2:
            continue
        try:
            points.append((float(parts[0]), float(parts[1])))
        except ValueError as exc:
            raise InputError(f"invalid KML coordinates: {token!r}") from exc
    return points
