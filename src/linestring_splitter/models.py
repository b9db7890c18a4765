"""Pydantic data models for the linestring splitter."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError

DEFAULT_MIN_LENGTH = 200.0
DEFAULT_MAX_LENGTH = 2000.0
DEFAULT_TRANSACTION_SIZE = 1000
DEFAULT_OUTPUT_FORMAT = "ESRI Shapefile"

Coordinate = tuple[float, float]


class Options(BaseModel):
    """Run configuration, fixed once the run starts."""

    model_config = ConfigDict(frozen=True)

    min_length: float = Field(DEFAULT_MIN_LENGTH, ge=0)
    max_length: float = Field(DEFAULT_MAX_LENGTH, gt=0)
    geographic: bool = False
    transaction_size: int = Field(DEFAULT_TRANSACTION_SIZE, ge=0)
    output_format: str = DEFAULT_OUTPUT_FORMAT
    dataset_creation_options: dict[str, str] = Field(default_factory=dict)
    layer_creation_options: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def build(cls, **values: Any) -> "Options":
        """Validate ``values`` into Options, raising ConfigurationError on bad input."""
        try:
            return cls(**values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise ConfigurationError(f"Invalid options: {problems}") from exc


class FieldDefinition(BaseModel):
    """An attribute field of a layer, in dBASE terms."""

    name: str
    field_type: str = "C"
    size: int = 254
    decimal: int = 0


class LayerMetadata(BaseModel):
    """Metadata about an input layer."""

    name: str
    geometry_type: str
    crs_epsg: int | None = None
    crs_name: str | None = None
    crs_wkt: str | None = None
    is_projected: bool | None = None
    is_geographic: bool = False
    fields: list[FieldDefinition]
    num_features: int


class Feature(BaseModel):
    """One input feature: attribute values plus its linestring parts.

    ``lines`` is empty for an empty geometry. ``multi`` is set when the source
    geometry was a MultiLinestring, even if it only has one member.
    """

    fid: int
    attributes: dict[str, Any]
    lines: list[list[Coordinate]]
    multi: bool = False

    @property
    def is_empty(self) -> bool:
        return not any(self.lines)


class RunSummary(BaseModel):
    """Counters reported at the end of a run."""

    features_read: int = 0
    lines_skipped: int = 0
    segments_written: int = 0
    commits: int = 0
    geographic: bool = False
