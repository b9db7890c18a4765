"""Run the splitter from an input layer or path to an output dataset."""

from __future__ import annotations

import logging
from pathlib import Path

from .models import Options, RunSummary
from .reader import InputLayer, open_input
from .splitter import LinestringSplitter
from .writer import OutputLayer, create_output

logger = logging.getLogger(__name__)


def create_output_layer(input_layer: InputLayer, output_path: str | Path | None, options: Options) -> OutputLayer:
    """Create the output layer named after the input layer, with its CRS and fields."""
    metadata = input_layer.metadata
    output_layer = create_output(
        options.output_format,
        output_path,
        metadata.name,
        crs_wkt=metadata.crs_wkt,
        dataset_options=options.dataset_creation_options,
        layer_options=options.layer_creation_options,
    )
    try:
        for field in metadata.fields:
            output_layer.create_field(field)
    except Exception:
        output_layer.close()
        raise
    return output_layer


def split_layer(input_layer: InputLayer, output_path: str | Path | None, options: Options) -> RunSummary:
    """Split ``input_layer`` into a new dataset. The output is released even if the run fails."""
    with create_output_layer(input_layer, output_path, options) as output_layer:
        logger.info(
            "Splitting %d features of %s (%s) into %s",
            input_layer.metadata.num_features,
            input_layer.metadata.name,
            input_layer.metadata.geometry_type,
            output_path,
        )
        return LinestringSplitter(input_layer, output_layer, options).run()


def split_dataset(input_path: str | Path, output_path: str | Path, options: Options) -> RunSummary:
    """Split every linestring of the dataset at ``input_path`` into ``output_path``."""
    with open_input(input_path) as input_layer:
        return split_layer(input_layer, output_path, options)
