"""
Azure DevOps Work Item Gateway.

Implements the WorkItemGateway protocol against the Azure Boards REST API:
WIQL for queries, workitemsbatch for details, per-item JSON Patch for writes.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator
from urllib.parse import quote

import requests

from backlog_sync.deadline import Deadline
from backlog_sync.logger import get_logger
from backlog_sync.workitem.config import (
    GatewayConfig,
    get_provider_config,
    parse_gateway_config,
)
from backlog_sync.workitem.errors import (
    BacklogSyncError,
    DeadlineExceeded,
    GatewayUnavailable,
    InvalidSpec,
    RequestRejected,
)
from backlog_sync.workitem.types import PatchOperation, WorkItem

logger = get_logger("gateway")

CONTINUATION_HEADER = "x-ms-continuationtoken"

# Transport failures worth another attempt; anything else from requests is final
TRANSIENT_ERRORS = (
    requests.Timeout,
    requests.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)


def _is_transient(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _retry_after(response: requests.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        # HTTP-date form is ignored; the computed backoff applies
        return None


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return (response.text or "")[:200]
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return str(payload)[:200]


class AzureDevOpsGateway:
    """
    WorkItemGateway implementation for Azure DevOps.

    Wraps a requests Session with PAT basic auth. Transient failures
    (timeouts, connection errors, 429, 5xx) are retried with exponential
    backoff; other 4xx responses fail immediately.
    """

    def __init__(
        self,
        config: GatewayConfig | dict | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize gateway with configuration.

        Args:
            config: GatewayConfig or raw provider dict. If None, loads from config file.
            session: Optional pre-built session (tests pass a fake here)
            sleep: Backoff sleep function
        """
        if config is None:
            config = get_provider_config("azure_devops")
        if isinstance(config, dict):
            config = parse_gateway_config(config)

        if not config.organization_url or not config.project:
            raise ValueError("azure_devops config requires organization_url and project")

        self._config = config
        self._fields = config.fields
        self._retry = config.retry
        self._sleep = sleep

        # Lazy session initialization
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Get or create the HTTP session (lazy initialization)."""
        if self._session is None:
            session = requests.Session()
            session.auth = ("", self._config.token)
            session.headers.update({"Accept": "application/json"})
            self._session = session
        return self._session

    @property
    def name(self) -> str:
        """Gateway identifier."""
        return "azure_devops"

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def _url(self, path: str) -> str:
        project = quote(self._config.project, safe="")
        return f"{self._config.organization_url}/{project}/_apis/wit/{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        item_id: int | None = None,
        deadline: Deadline | None = None,
        params: dict[str, Any] | None = None,
        **kwargs,
    ) -> requests.Response:
        """
        Issue one logical request, retrying transient failures.

        Raises:
            RequestRejected: Non-retryable 4xx, or a request that could not be sent
            GatewayUnavailable: Retries exhausted
            DeadlineExceeded: Deadline passed before or between attempts
        """
        url = self._url(path)
        query = {"api-version": self._config.api_version}
        query.update(params or {})
        attempts = self._retry.max_retries + 1
        last_error = ""
        last_status: int | None = None

        for attempt in range(attempts):
            if deadline is not None and deadline.expired:
                raise DeadlineExceeded(
                    f"Deadline exceeded before {method} {path}",
                    item_id=item_id,
                    attempts=attempt,
                    status_code=last_status,
                )

            timeout = self._config.timeout_s
            if deadline is not None:
                timeout = deadline.clip(timeout)

            retry_after = None
            try:
                response = self.session.request(
                    method, url, params=query, timeout=timeout, **kwargs
                )
            except TRANSIENT_ERRORS as e:
                last_status = None
                last_error = f"{type(e).__name__}: {e}"
            except requests.RequestException as e:
                logger.error(
                    "gateway.request.failed",
                    item_id=item_id,
                    method=method,
                    path=path,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise RequestRejected(
                    f"{method} {path} could not be sent: {type(e).__name__}: {e}",
                    item_id=item_id,
                ) from e
            else:
                status = response.status_code
                if status < 400:
                    return response

                message = _error_message(response)
                if not _is_transient(status):
                    logger.error(
                        "gateway.request.rejected",
                        item_id=item_id,
                        method=method,
                        path=path,
                        status_code=status,
                        error=message,
                    )
                    raise RequestRejected(
                        f"HTTP {status} for {method} {path}: {message}",
                        item_id=item_id,
                        status_code=status,
                    )
                last_status = status
                last_error = f"HTTP {status}: {message}"
                retry_after = _retry_after(response)

            if attempt + 1 >= attempts:
                break

            delay = self._retry.delay(attempt)
            if retry_after is not None:
                delay = max(delay, min(retry_after, self._retry.backoff_max_s))

            logger.warning(
                "gateway.retry",
                item_id=item_id,
                method=method,
                path=path,
                attempt=attempt + 1,
                delay_s=delay,
                status_code=last_status,
                error=last_error,
            )

            if deadline is not None and deadline.remaining() <= delay:
                raise DeadlineExceeded(
                    f"Deadline exceeded while backing off {method} {path}: {last_error}",
                    item_id=item_id,
                    attempts=attempt + 1,
                    status_code=last_status,
                )
            self._sleep(delay)

        logger.error(
            "gateway.unavailable",
            item_id=item_id,
            method=method,
            path=path,
            attempts=attempts,
            status_code=last_status,
            error=last_error,
        )
        raise GatewayUnavailable(
            f"{method} {path} failed after {attempts} attempts: {last_error}",
            item_id=item_id,
            attempts=attempts,
            status_code=last_status,
        )

    # --- Read Operations ---

    def run_query(
        self,
        query_text: str,
        top: int | None = None,
        deadline: Deadline | None = None,
    ) -> Iterator[int]:
        """
        Execute WIQL and yield ids in the order the query defines.

        Follows continuation tokens until the service stops sending one.

        Args:
            query_text: WIQL text (see build_query)
            top: Optional cap on returned ids
            deadline: Optional overall deadline

        Yields:
            Work item ids
        """
        params: dict[str, Any] = {}
        if top is not None:
            params["$top"] = int(top)

        page = 0
        yielded = 0
        while True:
            response = self._request(
                "POST", "wiql", deadline=deadline, params=params,
                json={"query": query_text},
            )
            payload = response.json()
            ids = [int(ref["id"]) for ref in payload.get("workItems", [])]
            page += 1
            logger.info("gateway.query.page", page=page, count=len(ids))

            for item_id in ids:
                yield item_id
                yielded += 1

            token = response.headers.get(CONTINUATION_HEADER)
            if not token or (top is not None and yielded >= top):
                return
            params = dict(params, continuationToken=token)

    def fetch_details(
        self,
        ids: Iterable[int],
        fields: list[str] | None = None,
        deadline: Deadline | None = None,
    ) -> dict[int, WorkItem]:
        """
        Fetch full records for ids, in bounded batches.

        Batches are dispatched on a small thread pool. If any batch fails
        the remaining ones are cancelled and the error is raised; partial
        results are discarded.

        Args:
            ids: Work item ids (duplicates ignored)
            fields: Field references to fetch (defaults to the detail field set)
            deadline: Optional overall deadline

        Returns:
            Mapping of id -> WorkItem
        """
        unique: list[int] = []
        for item_id in dict.fromkeys(ids):
            if not isinstance(item_id, int) or isinstance(item_id, bool) or item_id <= 0:
                raise InvalidSpec(f"Work item ids must be positive integers, got {item_id!r}")
            unique.append(item_id)
        if not unique:
            return {}

        size = self._config.batch_size
        batches = [unique[i:i + size] for i in range(0, len(unique), size)]
        fields = fields or self._fields.detail_fields()

        logger.info("gateway.fetch", ids=len(unique), batches=len(batches))

        results: dict[int, WorkItem] = {}
        workers = min(self._config.max_workers, len(batches))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._fetch_batch, batch, fields, deadline)
                for batch in batches
            ]
            try:
                for future in as_completed(futures):
                    results.update(future.result())
            except BacklogSyncError as e:
                for future in futures:
                    future.cancel()
                logger.error(
                    "gateway.fetch.aborted",
                    error_type=type(e).__name__,
                    error=e.message,
                )
                raise

        return results

    def _fetch_batch(
        self,
        batch: list[int],
        fields: list[str],
        deadline: Deadline | None,
    ) -> dict[int, WorkItem]:
        response = self._request(
            "POST", "workitemsbatch", deadline=deadline,
            json={"ids": batch, "fields": fields, "errorPolicy": "fail"},
        )
        payload = response.json()
        items = {}
        for record in payload.get("value", []):
            item = self.to_work_item(record)
            items[item.id] = item
        logger.debug("gateway.fetch.batch", requested=len(batch), received=len(items))
        return items

    # --- Write Operations ---

    def patch_work_item(
        self,
        item_id: int,
        operations: list[PatchOperation],
        deadline: Deadline | None = None,
    ) -> WorkItem:
        """
        Apply a JSON Patch document to one work item.

        Args:
            item_id: Target work item
            operations: Field assignments, all for item_id
            deadline: Optional overall deadline

        Returns:
            Updated WorkItem, or a bare WorkItem(id) when the 2xx body is not JSON
        """
        stray = [op for op in operations if op.item_id != item_id]
        if stray:
            raise InvalidSpec(
                f"Patch for {item_id} contains operations for {stray[0].item_id}",
                item_id=item_id,
            )

        response = self._request(
            "PATCH", f"workitems/{item_id}",
            item_id=item_id,
            deadline=deadline,
            json=[op.to_json_patch() for op in operations],
            headers={"Content-Type": "application/json-patch+json"},
        )
        try:
            payload = response.json()
        except ValueError:
            # The write went through; only the echoed record is unreadable
            logger.warning(
                "gateway.patch.unparsed",
                item_id=item_id,
                status_code=response.status_code,
            )
            return WorkItem(id=item_id)
        return self.to_work_item(payload)

    # --- Helpers ---

    def to_work_item(self, record: dict[str, Any]) -> WorkItem:
        """Convert an Azure DevOps work item payload to WorkItem."""
        f = self._fields
        values = record.get("fields", {}) or {}

        order = values.get(f.order)
        tags = values.get(f.tags) or ""

        return WorkItem(
            id=int(record["id"]),
            work_item_type=values.get(f.work_item_type, ""),
            title=values.get(f.title, ""),
            state=values.get(f.state, ""),
            assignee=self._parse_identity(values.get(f.assignee)),
            area_path=values.get(f.area_path, ""),
            iteration_path=values.get(f.iteration_path, ""),
            order=float(order) if order is not None else None,
            changed_at=self._parse_timestamp(values.get(f.changed_date)),
            tags=[t.strip() for t in tags.split(";") if t.strip()],
            url=record.get("url"),
            fields=values,
        )

    def _parse_identity(self, value: Any) -> str | None:
        """Identity fields come back as a dict with displayName, or a plain string."""
        if not value:
            return None
        if isinstance(value, dict):
            return value.get("uniqueName") or value.get("displayName")
        return str(value)

    def _parse_timestamp(self, ts: Any) -> datetime | None:
        """Parse an ISO-8601 timestamp."""
        if not ts:
            return None
        try:
            return datetime.fromisoformat(str(ts).replace("Z", "+00:00"))
        except ValueError:
            return None
