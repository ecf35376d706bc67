"""Status codes carried in every response envelope."""
from __future__ import annotations

import enum


class Status(enum.IntEnum):
    """gRPC-style status codes; the integer values are the wire format."""
    STATUS_OK = 0
    STATUS_CANCELLED = 1
    STATUS_UNKNOWN = 2
    STATUS_INVALID_ARGUMENT = 3
    STATUS_DEADLINE_EXCEEDED = 4
    STATUS_NOT_FOUND = 5
    STATUS_ALREADY_EXISTS = 6
    STATUS_PERMISSION_DENIED = 7
    STATUS_RESOURCE_EXHAUSTED = 8
    STATUS_FAILED_PRECONDITION = 9
    STATUS_ABORTED = 10
    STATUS_OUT_OF_RANGE = 11
    STATUS_UNIMPLEMENTED = 12
    STATUS_INTERNAL = 13
    STATUS_UNAVAILABLE = 14
    STATUS_DATA_LOSS = 15
    STATUS_UNAUTHENTICATED = 16

    def ts_name(self) -> str:
        return self.name
