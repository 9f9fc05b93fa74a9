"""HTTP surface for resultsink (FastAPI).

Routes:
    POST /                  ingest one result payload (JSON)
    GET  /tasks/subfolder/  scheduled folder reconciliation
    GET  /tasks/retry/      scheduled retry sweep
    POST anything else      ignored

Every route answers 200: the collector and the scheduler have nothing to do
with an error, all remediation happens in later retry and reconciliation
passes.
"""

import json
import logging
from contextlib import closing
from typing import Any, Callable, Dict

from fastapi import FastAPI, Request
from starlette.concurrency import run_in_threadpool

from resultsink import Config, __version__
from resultsink.errors import ConfigurationError, ResultSinkError, SerializationError
from resultsink.payload import ResultPayload
from workflows import (
    Runtime,
    build_runtime,
    handle_reconcile,
    handle_retry,
    is_scheduler_request,
)

logger = logging.getLogger(__name__)


def create_app(config: Config,
               runtime_factory: Callable[[Config], Runtime] = build_runtime) -> FastAPI:
    """Create the FastAPI app; each request gets its own Runtime."""
    app = FastAPI(title="resultsink", version=__version__)

    def ingest(data: Any) -> Dict[str, str]:
        try:
            payload = ResultPayload.from_dict(data)
        except SerializationError as e:
            logger.warning("cannot use payload - %s", e)
            return {"status": "ignored"}

        try:
            with closing(runtime_factory(config)) as runtime:
                outcome = runtime.ingest_handler().handle_result(payload, runtime.deadline())
        except ConfigurationError as e:
            logger.critical("not enough configuration, cannot process! (%s)", e)
            return {"status": "misconfigured"}
        except ResultSinkError as e:
            logger.warning("cannot process payload %s - %s", payload.key, e)
            return {"status": "failed"}

        delivered = outcome.document_delivered and outcome.record_inserted
        return {"status": "delivered" if delivered else "queued"}

    @app.post("/")
    async def ingest_result(request: Request) -> Dict[str, str]:
        if request.url.query:
            logger.info("reject invalid request (uri=%s)", request.url)
            return {"status": "ignored"}

        body = await request.body()
        if not body:
            logger.info("empty body, nothing to process")
            return {"status": "ignored"}

        try:
            data = json.loads(body)
        except ValueError as e:
            logger.warning("cannot unmarshal json data - %s", e)
            return {"status": "ignored"}

        return await run_in_threadpool(ingest, data)

    @app.post("/{path:path}")
    async def ignore_other_paths(request: Request) -> Dict[str, str]:
        logger.info("reject invalid request (uri=%s)", request.url)
        return {"status": "ignored"}

    @app.get("/tasks/subfolder/")
    def reconcile_folders(request: Request) -> Dict[str, Any]:
        try:
            with closing(runtime_factory(config)) as runtime:
                report = handle_reconcile(request.headers, runtime.reconciler, runtime.deadline())
        except ResultSinkError as e:
            logger.warning("reconciliation not started - %s", e)
            return {"status": "failed"}
        if report is None:
            # Rejected requests and aborted passes both come back as None
            if not is_scheduler_request(request.headers):
                return {"status": "skipped"}
            return {"status": "failed"}
        return {"status": "done", **report.__dict__}

    @app.get("/tasks/retry/")
    def retry_failed(request: Request) -> Dict[str, Any]:
        try:
            with closing(runtime_factory(config)) as runtime:
                reports = handle_retry(request.headers, runtime.coordinator,
                                       runtime.retry_queue(), runtime.deadline())
        except ResultSinkError as e:
            logger.warning("retry sweep not started - %s", e)
            return {"status": "failed"}
        if reports is None:
            return {"status": "skipped"}
        return {
            "status": "done",
            **{name: (r.__dict__ if r is not None else None) for name, r in reports.items()},
        }

    return app
