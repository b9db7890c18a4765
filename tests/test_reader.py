"""Tests for the shapefile reader (POLYLINE, CRS detection) and the KMZ/KML reader."""

import io
import zipfile

import pytest

from linestring_splitter import InputError, detect_crs, open_input, read_kmz, read_shapefile


class TestPolylineShapefile:
    def test_reads_metadata(self, projected_lines_path):
        with read_shapefile(projected_lines_path) as layer:
            meta = layer.metadata
            assert meta.name == "roads"
            assert meta.geometry_type == "POLYLINE"
            assert meta.num_features == 5
            assert [f.name for f in meta.fields] == ["NAME", "ROAD_ID"]
            assert meta.fields[0].field_type == "C"
            assert meta.fields[0].size == 40

    def test_detects_projected_crs(self, projected_lines_path):
        with read_shapefile(projected_lines_path) as layer:
            assert layer.metadata.crs_epsg == 23030
            assert layer.metadata.is_projected is True
            assert layer.metadata.is_geographic is False
            assert "UTM" in layer.metadata.crs_name

    def test_detects_geographic_crs(self, geographic_lines_path):
        with read_shapefile(geographic_lines_path) as layer:
            assert layer.metadata.crs_epsg == 4326
            assert layer.metadata.is_geographic is True

    def test_missing_prj_means_planar(self, unprojected_lines_path):
        with read_shapefile(unprojected_lines_path) as layer:
            assert layer.metadata.crs_wkt is None
            assert layer.metadata.is_geographic is False

    def test_features(self, projected_lines_path):
        with read_shapefile(projected_lines_path) as layer:
            features = list(layer.features())
        assert [f.fid for f in features] == [0, 1, 2, 3, 4]
        assert features[1].attributes == {"NAME": "long", "ROAD_ID": 2}
        assert features[1].lines == [[(0.0, 0.0), (0.0, 1000.0), (0.0, 2500.0), (0.0, 3000.0)]]
        assert features[1].multi is False

    def test_null_shape_is_empty(self, projected_lines_path):
        with read_shapefile(projected_lines_path) as layer:
            empty = list(layer.features())[2]
        assert empty.is_empty
        assert empty.attributes["NAME"] == "empty"

    def test_multipart_shape(self, projected_lines_path):
        with read_shapefile(projected_lines_path) as layer:
            multi = list(layer.features())[3]
        assert multi.multi is True
        assert multi.lines == [[(10.0, 0.0), (10.0, 500.0)], [(20.0, 0.0), (20.0, 1500.0), (20.0, 2600.0)]]

    def test_features_restart_each_time(self, projected_lines_path):
        with read_shapefile(projected_lines_path) as layer:
            assert len(list(layer.features())) == len(list(layer.features())) == 5

    def test_file_objects(self, projected_lines_path):
        base = projected_lines_path.with_suffix("")
        layer = read_shapefile(
            shp_file=io.BytesIO(base.with_suffix(".shp").read_bytes()),
            shx_file=io.BytesIO(base.with_suffix(".shx").read_bytes()),
            dbf_file=io.BytesIO(base.with_suffix(".dbf").read_bytes()),
            prj_wkt=base.with_suffix(".prj").read_text(),
            name="upload",
        )
        with layer:
            assert layer.metadata.name == "upload"
            assert layer.metadata.crs_epsg == 23030
            assert len(list(layer.features())) == 5

    def test_rejects_points(self, points_path):
        with pytest.raises(InputError, match="Unsupported shape type: POINT"):
            read_shapefile(points_path)

    def test_requires_a_source(self):
        with pytest.raises(InputError):
            read_shapefile()

    def test_truncated_shp_raises_input_error(self, projected_lines_path):
        shp = projected_lines_path.with_suffix(".shp")
        shp.write_bytes(shp.read_bytes()[:112])
        with read_shapefile(projected_lines_path) as layer:
            with pytest.raises(InputError, match="Reading features of roads failed"):
                list(layer.features())


class TestDetectCrs:
    def test_none(self):
        assert detect_crs(None) == (None, None, None, False, None)

    def test_garbage_wkt(self):
        assert detect_crs("not a crs") == (None, None, None, False, None)

    def test_missing_file(self, tmp_path):
        assert detect_crs(tmp_path / "absent.prj")[0] is None


class TestOpenInput:
    def test_shapefile(self, projected_lines_path):
        with open_input(projected_lines_path) as layer:
            assert layer.metadata.name == "roads"

    def test_shapefile_without_extension(self, projected_lines_path):
        with open_input(projected_lines_path.with_suffix("")) as layer:
            assert layer.metadata.num_features == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError, match="Open of"):
            open_input(tmp_path / "nothing.shp")

    def test_kml_path(self, tmp_path):
        path = tmp_path / "route.kml"
        path.write_text(TestKmlInline.KML_LINESTRING)
        with open_input(path) as layer:
            assert layer.metadata.name == "route"
            assert layer.metadata.is_geographic is True


class TestKmlInline:
    KML_LINESTRING = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark>
      <name>Ferry</name>
      <description>crossing</description>
      <LineString>
        <coordinates>-3.5,53.5,-10 -3.4,53.6,-20 -3.3,53.7,-30</coordinates>
      </LineString>
    </Placemark>
  </Document>
</kml>"""

    KML_MULTI = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark>
      <name>Two parts</name>
      <MultiGeometry>
        <LineString><coordinates>0,0 0,0.01</coordinates></LineString>
        <LineString><coordinates>1,1 1,1.01 1,1.02</coordinates></LineString>
      </MultiGeometry>
    </Placemark>
    <Placemark>
      <name>Single</name>
      <LineString><coordinates>2,2 2,2.01</coordinates></LineString>
    </Placemark>
  </Document>
</kml>"""

    KML_POINTS = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark><Point><coordinates>1.0,2.0,100</coordinates></Point></Placemark>
  </Document>
</kml>"""

    def test_linestring(self):
        layer = read_kmz(io.BytesIO(self.KML_LINESTRING.encode()))
        features = list(layer.features())
        assert layer.metadata.geometry_type == "LineString"
        assert layer.metadata.crs_epsg == 4326
        assert layer.metadata.is_geographic is True
        assert [f.name for f in layer.metadata.fields] == ["Name", "Description"]
        assert len(features) == 1
        assert features[0].attributes == {"Name": "Ferry", "Description": "crossing"}
        assert features[0].lines == [[(-3.5, 53.5), (-3.4, 53.6), (-3.3, 53.7)]]

    def test_multigeometry(self):
        layer = read_kmz(io.BytesIO(self.KML_MULTI.encode()))
        multi, single = list(layer.features())
        assert layer.metadata.geometry_type == "MultiLineString"
        assert multi.multi is True
        assert len(multi.lines) == 2
        assert single.multi is False
        assert single.attributes["Description"] == ""

    def test_points_rejected(self):
        with pytest.raises(InputError, match="Point"):
            read_kmz(io.BytesIO(self.KML_POINTS.encode()))

    def test_bad_coordinates(self):
        kml = self.KML_LINESTRING.replace("-3.4,53.6,-20", "abc,1")
        with pytest.raises(InputError, match="invalid KML coordinates: 'abc,1'"):
            read_kmz(io.BytesIO(kml.encode()))

    def test_extension_namespace_track_rejected(self):
        kml = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2" xmlns:gx="http://www.google.com/kml/ext/2.2">
  <Document>
    <Placemark>
      <name>Recorded</name>
      <gx:Track>
        <when>2024-05-01T10:00:00Z</when>
        <gx:coord>-3.5 53.5 0</gx:coord>
      </gx:Track>
    </Placemark>
  </Document>
</kml>"""
        with pytest.raises(InputError, match="Track"):
            read_kmz(io.BytesIO(kml.encode()))

    def test_kmz_from_bytes(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("doc.kml", self.KML_LINESTRING)
        buf.seek(0)
        layer = read_kmz(buf)
        assert layer.metadata.num_features == 1

    def test_kmz_without_kml(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("readme.txt", "nothing here")
        buf.seek(0)
        with pytest.raises(InputError, match="No .kml file"):
            read_kmz(buf)

    def test_invalid_xml(self):
        with pytest.raises(InputError):
            read_kmz(io.BytesIO(b"<kml><Document>"))
