# Application layer: services that orchestrate domain, security, governance and storage.
# Services are imported from their own modules; governance depends on storage below.

from change_control.application.exceptions import ApplicationError, StorageUnavailableError
from change_control.application.identity_repository import IdentityFilter, IdentityRepository
from change_control.application.request_repository import RequestFilter, RequestRepository
from change_control.application.results import OperationResult, Page, run_operation
from change_control.application.storage import call_storage

__all__ = [
    "ApplicationError",
    "IdentityFilter",
    "IdentityRepository",
    "OperationResult",
    "Page",
    "RequestFilter",
    "RequestRepository",
    "StorageUnavailableError",
    "call_storage",
    "run_operation",
]
