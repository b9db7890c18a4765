"""Output layers with transaction support, and the driver registry that creates them."""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import shapefile

from .errors import ConfigurationError, OutputError
from .models import Coordinate, FieldDefinition

logger = logging.getLogger(__name__)

CSV_SEPARATORS = {"COMMA": ",", "SEMICOLON": ";", "TAB": "\t", "SPACE": " "}


class OutputLayer:
    """A layer that receives single-linestring features.

    Features created while a transaction is open are held back until
    ``commit_transaction``; outside a transaction they are written directly.
    """

    driver_name = ""
    dataset_option_keys: tuple[str, ...] = ()
    layer_option_keys: tuple[str, ...] = ()

    def __init__(
        self,
        name: str,
        crs_wkt: str | None = None,
        dataset_options: dict[str, str] | None = None,
        layer_options: dict[str, str] | None = None,
    ):
        self.name = name
        self.crs_wkt = crs_wkt
        self.dataset_options = dict(dataset_options or {})
        self.layer_options = dict(layer_options or {})
        self.fields: list[FieldDefinition] = []
        self.feature_count = 0
        self.commit_count = 0
        self.transaction_count = 0
        self._pending: list[tuple[dict[str, Any], list[Coordinate]]] = []
        self._closed = False
        self._in_transaction = False
        self._warn_unknown_options("dataset", self.dataset_options, self.dataset_option_keys)
        self._warn_unknown_options("layer", self.layer_options, self.layer_option_keys)

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def create_field(self, field: FieldDefinition) -> None:
        if self.feature_count or self._pending:
            raise OutputError(f"Creating field {field.name} failed: layer already has features")
        self._add_field(field)
        self.fields.append(field)

    def create_feature(self, attributes: dict[str, Any], points: Sequence[Coordinate]) -> None:
        if len(points) < 2:
            raise OutputError(f"Cannot write a linestring with {len(points)} point(s)")
        feature = (dict(attributes), list(points))
        if self._in_transaction:
            self._pending.append(feature)
        else:
            self._write(*feature)

    def start_transaction(self) -> None:
        if self._in_transaction:
            raise OutputError(f"Starting transaction on layer {self.name} failed: a transaction is already open")
        self._in_transaction = True
        self.transaction_count += 1

    def commit_transaction(self) -> None:
        if not self._in_transaction:
            raise OutputError(f"Committing transaction on layer {self.name} failed: no transaction is open")
        pending, self._pending = self._pending, []
        for attributes, points in pending:
            self._write(attributes, points)
        self._in_transaction = False
        self.commit_count += 1

    def sync_to_disk(self) -> None:
        if self._in_transaction:
            raise OutputError(f"Cannot sync layer {self.name}: transaction still open")
        self._sync()
        self._closed = True

    def close(self) -> None:
        """Release the output files. Pending features are discarded, nothing is flushed."""
        if self._closed:
            return
        self._closed = True
        self._pending = []
        self._in_transaction = False
        self._close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _write(self, attributes: dict[str, Any], points: list[Coordinate]) -> None:
        self._write_feature(attributes, points)
        self.feature_count += 1

    def _add_field(self, field: FieldDefinition) -> None:
        pass

    def _write_feature(self, attributes: dict[str, Any], points: list[Coordinate]) -> None:
        raise NotImplementedError

    def _sync(self) -> None:
        pass

    def _close(self) -> None:
        pass

    def _values(self, attributes: dict[str, Any]) -> list[Any]:
        return [attributes.get(f.name) for f in self.fields]

    def _warn_unknown_options(self, kind: str, options: dict[str, str], known: tuple[str, ...]) -> None:
        for key in options:
            if key not in known:
                logger.warning("%s driver does not support %s creation option %s", self.driver_name, kind, key)


class ShapefileOutput(OutputLayer):
    """Writes an ESRI Shapefile (POLYLINE) with pyshp."""

    driver_name = "ESRI Shapefile"
    layer_option_keys = ("ENCODING",)

    def __init__(self, path: str | Path, name: str, crs_wkt: str | None = None, dataset_options=None, layer_options=None):
        super().__init__(name, crs_wkt, dataset_options, layer_options)
        self.encoding = self.layer_options.get("ENCODING", "UTF-8")
        self.base_path = _shapefile_base(Path(path), name)
        try:
            self._writer = shapefile.Writer(str(self.base_path), shapeType=shapefile.POLYLINE, encoding=self.encoding)
        except (shapefile.ShapefileException, OSError, LookupError) as exc:
            raise OutputError(f"failed to create data source {path}: {exc}") from exc

    def _add_field(self, field: FieldDefinition) -> None:
        try:
            self._writer.field(field.name, field.field_type, size=field.size, decimal=field.decimal)
        except (shapefile.ShapefileException, ValueError) as exc:
            raise OutputError(f"Creating field {field.name} failed: {exc}") from exc

    def _write_feature(self, attributes: dict[str, Any], points: list[Coordinate]) -> None:
        try:
            self._writer.line([[list(p) for p in points]])
            self._writer.record(*self._values(attributes))
        except (shapefile.ShapefileException, OSError, ValueError, TypeError) as exc:
            raise OutputError(f"Writing feature to {self.base_path}.shp failed: {exc}") from exc

    def _sync(self) -> None:
        try:
            self._writer.close()
            if self.crs_wkt:
                Path(f"{self.base_path}.prj").write_text(self.crs_wkt)
            Path(f"{self.base_path}.cpg").write_text(self.encoding)
        except (shapefile.ShapefileException, OSError) as exc:
            raise OutputError(f"Flushing {self.base_path}.shp failed: {exc}") from exc

    def _close(self) -> None:
        # closing the raw files first makes pyshp skip its header and balance checks
        for f in (self._writer.shp, self._writer.shx, self._writer.dbf):
            if f is not None and not f.closed:
                f.close()


class CsvOutput(OutputLayer):
    """Writes a CSV file with the geometry as a WKT column."""

    driver_name = "CSV"
    layer_option_keys = ("SEPARATOR", "GEOMETRY_NAME")

    def __init__(self, path: str | Path, name: str, crs_wkt: str | None = None, dataset_options=None, layer_options=None):
        super().__init__(name, crs_wkt, dataset_options, layer_options)
        separator = self.layer_options.get("SEPARATOR", "COMMA").upper()
        if separator not in CSV_SEPARATORS:
            raise OutputError(f"Unsupported CSV separator {separator}")
        self.geometry_name = self.layer_options.get("GEOMETRY_NAME", "WKT")
        path = Path(path)
        self.path = path / f"{name}.csv" if path.is_dir() else path
        try:
            self._file = open(self.path, "w", newline="", encoding="utf-8")
        except OSError as exc:
            raise OutputError(f"failed to create data source {self.path}: {exc}") from exc
        self._writer = csv.writer(self._file, delimiter=CSV_SEPARATORS[separator])
        self._header_written = False

    def _write_header(self) -> None:
        self._writer.writerow([self.geometry_name] + [f.name for f in self.fields])
        self._header_written = True

    def _write_feature(self, attributes: dict[str, Any], points: list[Coordinate]) -> None:
        try:
            if not self._header_written:
                self._write_header()
            self._writer.writerow([linestring_wkt(points)] + self._values(attributes))
        except (OSError, csv.Error) as exc:
            raise OutputError(f"Writing feature to {self.path} failed: {exc}") from exc

    def _sync(self) -> None:
        try:
            if not self._header_written:
                self._write_header()
            self._file.close()
        except OSError as exc:
            raise OutputError(f"Flushing {self.path} failed: {exc}") from exc

    def _close(self) -> None:
        self._file.close()


class MemoryOutput(OutputLayer):
    """Keeps written features in a list."""

    driver_name = "Memory"

    def __init__(self, path: str | Path | None, name: str, crs_wkt: str | None = None, dataset_options=None, layer_options=None):
        super().__init__(name, crs_wkt, dataset_options, layer_options)
        self.features: list[tuple[dict[str, Any], list[Coordinate]]] = []
        self.synced = False

    def _write_feature(self, attributes: dict[str, Any], points: list[Coordinate]) -> None:
        self.features.append((attributes, points))

    def _sync(self) -> None:
        self.synced = True


DRIVERS: dict[str, type[OutputLayer]] = {
    cls.driver_name: cls for cls in (ShapefileOutput, CsvOutput, MemoryOutput)
}


def get_driver(name: str) -> type[OutputLayer]:
    """Look up an output driver by name, ignoring case."""
    for driver_name, driver in DRIVERS.items():
        if driver_name.casefold() == name.casefold():
            return driver
    raise OutputError(f"failed to load driver for {name}")


def create_output(
    driver_name: str,
    path: str | Path | None,
    layer_name: str,
    crs_wkt: str | None = None,
    dataset_options: dict[str, str] | None = None,
    layer_options: dict[str, str] | None = None,
) -> OutputLayer:
    """Create the output dataset and its single layer."""
    driver = get_driver(driver_name)
    if driver is not MemoryOutput:
        if path is None:
            raise OutputError(f"{driver.driver_name} driver needs an output path")
        parent = Path(path) if Path(path).is_dir() else Path(path).parent
        if not parent.is_dir():
            raise OutputError(f"failed to create data source {path}: directory {parent} does not exist")
    return driver(path, layer_name, crs_wkt, dataset_options, layer_options)


def parse_creation_options(values: Iterable[str] | None) -> dict[str, str]:
    """Parse ``KEY=VALUE`` strings, each possibly a comma-joined list, into a dict."""
    options: dict[str, str] = {}
    for value in values or ():
        for item in value.split(","):
            item = item.strip()
            if not item:
                continue
            key, sep, val = item.partition("=")
            if not sep or not key.strip():
                raise ConfigurationError(f"Creation option {item!r} is not of the form KEY=VALUE")
            options[key.strip().upper()] = val.strip()
    return options


def linestring_wkt(points: Sequence[Coordinate]) -> str:
    return "LINESTRING (" + ", ".join(f"{x!r} {y!r}" for x, y in points) + ")"


def _shapefile_base(path: Path, name: str) -> Path:
    if path.is_dir():
        return path / name
    if path.suffix.lower() == ".shp":
        return path.with_suffix("")
    return path
