from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
import json
import logging
import threading
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from search_link.models.errors import RemoteError
from search_link.models.executor import HttpMethod, execute_request

logger = logging.getLogger(__name__)

NDJSON_HEADERS = {"Content-Type": "application/x-ndjson"}


def compute_bulk_concurrency(shards: int, cpus: int, cap: int) -> int:
    """
    Parallelism for a bulk session. More workers than shards gains nothing on the server, more than
    CPUs gains nothing locally, and `cap` is the operator's ceiling. Never less than one.
    """
    return max(1, min(shards, min(cpus, cap)))


class BulkResponse(BaseModel):
    took: int
    errors: bool
    items: List[Dict[str, Dict[str, Any]]]

    def first_error(self) -> Optional[Dict[str, Any]]:
        for item in self.items:
            for result in item.values():
                if "error" in result:
                    return result
        return None


@dataclass
class BulkResult:
    total_docs: int
    total_batches: int


def parse_bulk_response(body) -> BulkResponse:
    response = BulkResponse.model_validate_json(body.read())
    if response.errors:
        failed = response.first_error()
        if failed is not None:
            raise RemoteError(failed.get("status", 500), json.dumps(failed["error"], indent=2))
        raise RemoteError(500, "bulk request reported errors without any failed items")
    return response


class BulkRequest:
    """
    Buffers index/update/delete actions into NDJSON batches of roughly `batch_size` bytes and sends
    them to `_bulk` from a pool of `concurrency` workers. At most `concurrency` batches are in
    flight at once; queuing blocks until a worker frees up.
    """

    def __init__(self, elasticsearch, concurrency: int, batch_size: int) -> None:
        self.elasticsearch = elasticsearch
        self.concurrency = concurrency
        self.batch_size = batch_size
        self._buffer = bytearray()
        self._buffered_docs = 0
        self._total_docs = 0
        self._total_batches = 0
        self._futures: List[Future] = []
        self._slots = threading.BoundedSemaphore(concurrency)
        self._failure: Optional[BaseException] = None
        self._finished = False
        self._executor = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="bulk")
        logger.info(f"Starting bulk session for {elasticsearch.index_name} with concurrency {concurrency} "
                    f"and batch size {batch_size} bytes")

    def __enter__(self) -> "BulkRequest":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._finished:
            return
        if exc_type is None:
            self.finish()
        else:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._finished = True

    def insert(self, doc: Dict[str, Any], doc_id: Optional[str] = None) -> None:
        action: Dict[str, Any] = {} if doc_id is None else {"_id": doc_id}
        self._queue({"index": action}, doc)

    def update(self, doc_id: str, doc: Dict[str, Any]) -> None:
        self._queue({"update": {"_id": doc_id}}, {"doc": doc})

    def delete(self, doc_id: str) -> None:
        self._queue({"delete": {"_id": doc_id}})

    def _queue(self, action: Dict[str, Any], source: Optional[Dict[str, Any]] = None) -> None:
        self._check_usable()
        self._buffer += json.dumps(action).encode("utf-8") + b"\n"
        if source is not None:
            self._buffer += json.dumps(source).encode("utf-8") + b"\n"
        self._buffered_docs += 1
        if len(self._buffer) >= self.batch_size:
            self._flush()

    def _check_usable(self) -> None:
        if self._failure is not None:
            raise RuntimeError("Bulk session aborted after a failed batch") from self._failure
        if self._finished:
            raise RuntimeError("Bulk session is already finished")

    def _flush(self) -> None:
        if not self._buffer:
            return
        body = bytes(self._buffer)
        docs = self._buffered_docs
        self._buffer = bytearray()
        self._buffered_docs = 0

        self._slots.acquire()
        future = self._executor.submit(self._send, body, docs)
        future.add_done_callback(self._on_done)
        self._futures.append(future)
        self._total_docs += docs
        self._total_batches += 1

    def _send(self, body: bytes, docs: int) -> BulkResponse:
        url = f"{self.elasticsearch.base_url()}/_bulk"
        logger.debug(f"Sending bulk batch of {docs} actions ({len(body)} bytes)")
        return execute_request(HttpMethod.POST, url, body, parse_bulk_response, headers=NDJSON_HEADERS,
                               auth=self.elasticsearch.auth, transport=self.elasticsearch.transport)

    def _on_done(self, future: Future) -> None:
        self._slots.release()
        if future.cancelled():
            return
        error = future.exception()
        if error is not None and self._failure is None:
            logger.error(f"Bulk batch for {self.elasticsearch.index_name} failed: {error}")
            self._failure = error

    def finish(self) -> BulkResult:
        if self._finished:
            raise RuntimeError("Bulk session is already finished")
        if self._failure is None:
            self._flush()
        self._finished = True
        self._executor.shutdown(wait=True)
        for future in self._futures:
            error = future.exception()
            if error is not None:
                raise error
        logger.info(f"Bulk session for {self.elasticsearch.index_name} sent {self._total_docs} actions "
                    f"in {self._total_batches} batches")
        return BulkResult(total_docs=self._total_docs, total_batches=self._total_batches)
