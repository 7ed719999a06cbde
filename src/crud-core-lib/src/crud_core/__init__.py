"""
crud_core — Request dispatch core for the single-table CRUD Lambda.

Table Access Layer (client), Operation Registry (operations) and Request
Dispatcher (dispatcher).  Shipped as a Lambda layer; the Lambda handler in
src/crud_api only decodes platform events and renders responses.
"""

from crud_core.client import DynamoTableStore, TableStore
from crud_core.config import ErrorStatusMode, Settings
from crud_core.dispatcher import Dispatcher
from crud_core.exceptions import (
    BadRequest,
    CrudError,
    InternalError,
    InvalidArgument,
    NotFound,
    PreconditionFailed,
    StoreUnavailable,
    UnsupportedOperation,
)
from crud_core.models import ErrorKind, Operation, RequestEnvelope, ResponseEnvelope

__all__ = [
    "BadRequest",
    "CrudError",
    "Dispatcher",
    "DynamoTableStore",
    "ErrorKind",
    "ErrorStatusMode",
    "InternalError",
    "InvalidArgument",
    "NotFound",
    "Operation",
    "PreconditionFailed",
    "RequestEnvelope",
    "ResponseEnvelope",
    "Settings",
    "StoreUnavailable",
    "TableStore",
    "UnsupportedOperation",
]
