"""
Content-hash synchronisation of catalog records into a document store.
"""

from .documents import build_sync_documents
from .hashing import canonical_json, content_hash, make_document, volatile_serializer
from .reconciler import FailedItem, Reconciler, SyncReport
from .storage import (
    DocumentStore,
    InMemoryDocumentStore,
    LocalDocumentStore,
    S3DocumentStore,
    StoredDocument,
    get_document_store,
)

__all__ = [
    'build_sync_documents',
    'canonical_json',
    'content_hash',
    'make_document',
    'volatile_serializer',
    'FailedItem',
    'Reconciler',
    'SyncReport',
    'DocumentStore',
    'InMemoryDocumentStore',
    'LocalDocumentStore',
    'S3DocumentStore',
    'StoredDocument',
    'get_document_store',
]
