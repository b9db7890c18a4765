"""Split the linestrings of a line dataset into parts of bounded length."""

from .distance import distance, line_length
from .errors import ConfigurationError, InputError, OutputError, SplitterError
from .kml_reader import read_kmz
from .models import Feature, FieldDefinition, LayerMetadata, Options, RunSummary
from .pipeline import split_dataset, split_layer
from .reader import detect_crs, open_input, read_shapefile
from .splitter import LinestringSplitter, should_skip, split_points
from .writer import create_output, get_driver, parse_creation_options

__all__ = [
    "ConfigurationError",
    "Feature",
    "FieldDefinition",
    "InputError",
    "LayerMetadata",
    "LinestringSplitter",
    "Options",
    "OutputError",
    "RunSummary",
    "SplitterError",
    "create_output",
    "detect_crs",
    "distance",
    "get_driver",
    "line_length",
    "open_input",
    "parse_creation_options",
    "read_kmz",
    "read_shapefile",
    "should_skip",
    "split_dataset",
    "split_layer",
    "split_points",
]
