"""
Transfer pipeline: CSV stream helpers and the transfer engine.

The engine lives in ``tabletransit.pipeline.transfer``; it is not imported
here because drivers depend on the stream helpers in this package.
"""

from .streams import CHUNK_SIZE, CsvStream, consume_completions, iterate_file, strip_csv_header

__all__ = ["CHUNK_SIZE", "CsvStream", "consume_completions", "iterate_file", "strip_csv_header"]
