"""Split linestrings at a maximum length and write the parts in batched transactions."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence

from .distance import distance, line_length
from .models import Coordinate, Feature, Options, RunSummary
from .reader import InputLayer
from .writer import OutputLayer

logger = logging.getLogger(__name__)

# Closed linestrings with more points than this are kept whatever their length.
# This is a policy threshold (protects roundabouts and similar small rings), not
# a geometric property.
RING_MIN_POINTS = 5


def is_closed(points: Sequence[Coordinate]) -> bool:
    return len(points) > 1 and points[0] == points[-1]


def should_skip(points: Sequence[Coordinate], min_length: float, geographic: bool = False) -> bool:
    """Whether a linestring is too short to be worth writing."""
    if is_closed(points) and len(points) > RING_MIN_POINTS:
        return False
    return line_length(points, geographic) < min_length


def split_points(
    points: Sequence[Coordinate], max_length: float, geographic: bool = False
) -> Iterator[list[Coordinate]]:
    """Yield the parts of a linestring, cutting after the length exceeds ``max_length``.

    The point at which a cut happens ends one part and starts the next. The
    trailing remainder is yielded only if it has at least two points.
    """
    if not points:
        return
    length = 0.0
    buffer = [points[0]]
    for i in range(1, len(points)):
        length += distance(points[i - 1], points[i], geographic)
        buffer.append(points[i])
        if length > max_length:
            yield buffer
            buffer = [points[i]]
            length = 0.0
    if len(buffer) > 1:
        yield buffer


class LinestringSplitter:
    """Reads every feature of an input layer and writes its split linestrings.

    The distance mode is decided once: geographic if the input CRS is
    geographic or the options force it.
    """

    def __init__(self, input_layer: InputLayer, output_layer: OutputLayer, options: Options):
        self.input_layer = input_layer
        self.output_layer = output_layer
        self.options = options
        self.geographic = input_layer.metadata.is_geographic or options.geographic
        self.summary = RunSummary(geographic=self.geographic)
        self._batch_count = 0

    def run(self) -> RunSummary:
        """Process all input features, then commit and flush the output."""
        if self.options.transaction_size > 0:
            self.output_layer.start_transaction()
        for feature in self.input_layer.features():
            self.summary.features_read += 1
            self.split_and_write_feature(feature)
        self.finalize()
        return self.summary

    def split_and_write_feature(self, feature: Feature) -> None:
        if feature.is_empty:
            return
        for index, line in enumerate(feature.lines):
            if feature.multi:
                logger.debug("Feature %d: member %d of %d", feature.fid, index + 1, len(feature.lines))
            self.split_linestring(feature, line)

    def split_linestring(self, feature: Feature, points: Sequence[Coordinate]) -> None:
        if should_skip(points, self.options.min_length, self.geographic):
            logger.debug("Feature %d: skipping short linestring with %d points", feature.fid, len(points))
            self.summary.lines_skipped += 1
            return
        if self.options.transaction_size == 0 and not self.output_layer.in_transaction:
            self.output_layer.start_transaction()
        for part in split_points(points, self.options.max_length, self.geographic):
            self.write_part(feature, part)

    def write_part(self, feature: Feature, points: list[Coordinate]) -> None:
        self.output_layer.create_feature(dict(feature.attributes), points)
        self.summary.segments_written += 1
        self._batch_count += 1
        if self.options.transaction_size > 0 and self._batch_count > self.options.transaction_size:
            logger.debug("Committing batch of %d features", self._batch_count)
            self.output_layer.commit_transaction()
            self.summary.commits += 1
            self.output_layer.start_transaction()
            self._batch_count = 0

    def finalize(self) -> None:
        """Commit the open transaction, if any, and flush the output."""
        if self.output_layer.in_transaction:
            self.output_layer.commit_transaction()
            self.summary.commits += 1
        self.output_layer.sync_to_disk()
