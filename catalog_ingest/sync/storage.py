# catalog_ingest/sync/storage.py

import json
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, unquote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from ..utils.error_handler import StoreConnectionError, SyncWriteError
from ..utils.logger import setup_logger

logger = setup_logger("storage")


@dataclass(frozen=True)
class StoredDocument:
    payload: Dict[str, Any]
    content_hash: str
    synced_at: Optional[str] = None


def _envelope(payload: Dict[str, Any], content_hash: str, synced_at: str) -> Dict[str, Any]:
    return {"payload": payload, "contentHash": content_hash, "syncedAt": synced_at}


def _unwrap(data: Dict[str, Any]) -> StoredDocument:
    return StoredDocument(
        payload=data.get("payload", {}),
        content_hash=data.get("contentHash", ""),
        synced_at=data.get("syncedAt"),
    )


class DocumentStore:
    """Minimal remote document store contract used by the reconciler"""

    def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        raise NotImplementedError

    def set(self, collection: str, document_id: str, payload: Dict[str, Any], content_hash: str, synced_at: str):
        raise NotImplementedError

    def delete(self, collection: str, document_id: str):
        raise NotImplementedError

    def list_ids(self, collection: str) -> List[str]:
        raise NotImplementedError

    def check_connection(self):
        """Raise StoreConnectionError when the store cannot be reached"""


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed store for tests and dry runs"""

    def __init__(self):
        self._documents: Dict[Tuple[str, str], StoredDocument] = {}
        self._lock = threading.Lock()
        self.writes = 0
        self.deletes = 0

    def get(self, collection, document_id):
        with self._lock:
            return self._documents.get((collection, document_id))

    def set(self, collection, document_id, payload, content_hash, synced_at):
        with self._lock:
            self._documents[(collection, document_id)] = StoredDocument(payload, content_hash, synced_at)
            self.writes += 1

    def delete(self, collection, document_id):
        with self._lock:
            self._documents.pop((collection, document_id), None)
            self.deletes += 1

    def list_ids(self, collection):
        with self._lock:
            return sorted(doc_id for coll, doc_id in self._documents if coll == collection)


class LocalDocumentStore(DocumentStore):
    """One JSON file per document under <root>/<collection>/"""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, collection: str, document_id: str) -> Path:
        return self.root / quote(collection, safe="") / f"{quote(document_id, safe='')}.json"

    def get(self, collection, document_id):
        path = self._path(collection, document_id)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return _unwrap(json.load(f))

    def set(self, collection, document_id, payload, content_hash, synced_at):
        path = self._path(collection, document_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(_envelope(payload, content_hash, synced_at), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
        logger.debug(f"Document written locally: {path}")

    def delete(self, collection, document_id):
        path = self._path(collection, document_id)
        if path.exists():
            path.unlink()
            logger.debug(f"Local document deleted: {path}")

    def list_ids(self, collection):
        directory = self.root / quote(collection, safe="")
        if not directory.exists():
            return []
        return sorted(unquote(p.stem) for p in directory.glob("*.json"))

    def check_connection(self):
        if not os.access(self.root, os.W_OK):
            raise StoreConnectionError(f"Local store directory is not writable: {self.root}")


class S3DocumentStore(DocumentStore):
    """S3 implementation: one JSON object per document under <prefix><collection>/"""

    def __init__(self, bucket_name: str, prefix: str = "catalog/", s3_client=None, settings: Optional[Settings] = None):
        settings = settings or Settings()
        self.s3_client = s3_client or boto3.client(
            's3',
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION
        )
        self.bucket_name = bucket_name
        self.prefix = prefix
        logger.info(f"Initialized S3 document store with bucket: {self.bucket_name}")

    def _key(self, collection: str, document_id: str) -> str:
        return f"{self.prefix}{collection}/{document_id}.json"

    def get(self, collection, document_id):
        key = self._key(collection, document_id)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise
        return _unwrap(json.loads(response["Body"].read()))

    def set(self, collection, document_id, payload, content_hash, synced_at):
        key = self._key(collection, document_id)
        body = json.dumps(_envelope(payload, content_hash, synced_at), ensure_ascii=False).encode("utf-8")
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=body,
                ContentType='application/json',
                Metadata={'content-hash': content_hash},
            )
        except ClientError as e:
            raise SyncWriteError(f"S3 rejected write of {key}: {e}") from e
        logger.debug(f"Document written to S3: {key}")

    def delete(self, collection, document_id):
        key = self._key(collection, document_id)
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            raise SyncWriteError(f"S3 rejected delete of {key}: {e}") from e
        logger.debug(f"Document deleted from S3: {key}")

    def list_ids(self, collection):
        prefix = f"{self.prefix}{collection}/"
        paginator = self.s3_client.get_paginator('list_objects_v2')
        ids = []
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            for obj in page.get('Contents', []):
                key = obj['Key']
                if key.endswith('.json') and '/' not in key[len(prefix):]:
                    ids.append(key[len(prefix):-len('.json')])
        return sorted(ids)

    def check_connection(self):
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except (ClientError, BotoCoreError) as e:
            raise StoreConnectionError(f"Cannot reach S3 bucket {self.bucket_name}: {e}") from e


def get_document_store(settings: Optional[Settings] = None) -> DocumentStore:
    """Factory function to get the document store for the current environment"""
    settings = settings or Settings()
    if settings.is_production:
        # In production, we need AWS credentials
        if not all([settings.AWS_ACCESS_KEY_ID, settings.AWS_SECRET_ACCESS_KEY, settings.AWS_BUCKET_NAME]):
            raise StoreConnectionError(
                "Production mode requires AWS credentials (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_BUCKET_NAME)"
            )
        logger.info("Using S3 document store in production")
        store = S3DocumentStore(settings.AWS_BUCKET_NAME, prefix=settings.SYNC_PREFIX, settings=settings)
    else:
        # In development, always use local storage
        logger.info("Using local document store in development")
        store = LocalDocumentStore(settings.SYNC_DIR)

    store.check_connection()
    return store
