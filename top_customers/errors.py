"""Exceptions raised by the top customers pipeline.

Only the load and export stages have fatal failure modes. Data-quality gaps
(unpriced content, missing contact values) and degenerate inputs are reported
in the returned data instead of being raised.
"""

from __future__ import annotations


class TopCustomersError(Exception):
    """Base class for fatal pipeline failures."""


class LoadError(TopCustomersError):
    """An input stream could not be loaded completely."""


class ExportError(TopCustomersError):
    """Writing to the sink failed.

    Attributes
    ----------
    table_name:
        Sink table the batch was written to
    batch_index:
        0-based index of the failed batch, ``None`` when the sink table
        could not be created
    rows_committed:
        Rows persisted by earlier, successfully committed batches
    """

    def __init__(
        self,
        message: str,
        *,
        table_name: str,
        batch_index: int | None,
        rows_committed: int,
    ) -> None:
        super().__init__(message)
        self.table_name = table_name
        self.batch_index = batch_index
        self.rows_committed = rows_committed
