"""Resumable, fault-tolerant scans over token-ring partitioned tables."""

from ringscan.contexts import Cursor, SkippedRange
from ringscan.datatypes import Page, Row
from ringscan.errors import ErrorKind, ScanError
from ringscan.fetcher import PageFetcher
from ringscan.multi import MultiTableScanner
from ringscan.params import ConsistencyLevel, ExecuteOptions, ScanParams
from ringscan.protocols import Consumer, DataInput, Provider, ScanBackend
from ringscan.query import Query, build_query
from ringscan.retry import (
    AlwaysRetry,
    BoundedRetry,
    FailureKind,
    RetryDecision,
    RetryPolicy,
    RetryVerdict,
)
from ringscan.scanner import TableScanner

__all__ = [
    "AlwaysRetry",
    "BoundedRetry",
    "ConsistencyLevel",
    "Consumer",
    "Cursor",
    "DataInput",
    "ErrorKind",
    "ExecuteOptions",
    "FailureKind",
    "MultiTableScanner",
    "Page",
    "PageFetcher",
    "Provider",
    "Query",
    "RetryDecision",
    "RetryPolicy",
    "RetryVerdict",
    "Row",
    "ScanBackend",
    "ScanError",
    "ScanParams",
    "SkippedRange",
    "TableScanner",
    "build_query",
]
