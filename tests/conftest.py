from pathlib import Path

import pytest
import shapefile
from pyproj import CRS

from linestring_splitter.models import Feature, LayerMetadata
from linestring_splitter.reader import InputLayer

LINE_FIELDS = [("NAME", "C", 40, 0), ("ROAD_ID", "N", 10, 0)]

# Five records: a short line (skipped), a line split in two, a null shape,
# a multipart line giving two parts, and a small closed ring with six points.
PROJECTED_RECORDS = [
    ([[(0.0, 0.0), (0.0, 100.0)]], ("short", 1)),
    ([[(0.0, 0.0), (0.0, 1000.0), (0.0, 2500.0), (0.0, 3000.0)]], ("long", 2)),
    (None, ("empty", 3)),
    ([[(10.0, 0.0), (10.0, 500.0)], [(20.0, 0.0), (20.0, 1500.0), (20.0, 2600.0)]], ("multi", 4)),
    (
        [[(100.0, 100.0), (110.0, 100.0), (110.0, 110.0), (105.0, 110.0), (100.0, 110.0), (100.0, 100.0)]],
        ("roundabout", 5),
    ),
]

GEOGRAPHIC_RECORDS = [
    ([[(0.0, 0.0), (0.0, 0.01), (0.0, 0.02), (0.0, 0.03)]], ("meridian", 1)),
]


def write_line_shapefile(base: Path, records, epsg: int | None = None, fields=LINE_FIELDS) -> Path:
    with shapefile.Writer(str(base), shapeType=shapefile.POLYLINE) as w:
        for field in fields:
            w.field(*field)
        for parts, values in records:
            if parts is None:
                w.null()
            else:
                w.line([[list(p) for p in part] for part in parts])
            w.record(*values)
    if epsg is not None:
        Path(f"{base}.prj").write_text(CRS.from_epsg(epsg).to_wkt())
    return base.with_suffix(".shp")


class ListLayer(InputLayer):
    """An input layer over a list of features."""

    def __init__(self, features, geographic=False, name="lines"):
        self._features = list(features)
        self.metadata = LayerMetadata(
            name=name,
            geometry_type="LineString",
            is_geographic=geographic,
            fields=[],
            num_features=len(self._features),
        )

    def features(self):
        yield from self._features


def make_feature(fid, *lines, multi=False, **attributes):
    return Feature(fid=fid, attributes=attributes, lines=[list(line) for line in lines], multi=multi)


@pytest.fixture
def projected_lines_path(tmp_path):
    return write_line_shapefile(tmp_path / "roads", PROJECTED_RECORDS, epsg=23030)


@pytest.fixture
def geographic_lines_path(tmp_path):
    return write_line_shapefile(tmp_path / "meridian", GEOGRAPHIC_RECORDS, epsg=4326)


@pytest.fixture
def unprojected_lines_path(tmp_path):
    return write_line_shapefile(tmp_path / "plain", PROJECTED_RECORDS)


@pytest.fixture
def points_path(tmp_path):
    base = tmp_path / "points"
    with shapefile.Writer(str(base), shapeType=shapefile.POINT) as w:
        w.field("NAME", "C", 40)
        w.point(1.0, 2.0)
        w.record("a")
    return base.with_suffix(".shp")
