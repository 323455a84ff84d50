"""Pytest configuration for backlog-sync tests."""
import sys
import threading
from pathlib import Path

import pytest

# Add project root to path so 'backlog_sync' can be imported without install
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backlog_sync.workitem.config import GatewayConfig, RetryPolicy  # noqa: E402
from backlog_sync.workitem.errors import RequestRejected  # noqa: E402
from backlog_sync.workitem.types import WorkItem  # noqa: E402


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, payload=None, headers=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """
    Records every request and answers through a handler function.

    handler(method, url, **kwargs) returns a FakeResponse or raises.
    """

    def __init__(self, handler):
        self._handler = handler
        self._lock = threading.Lock()
        self.calls = []

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((method, url, kwargs))
        return self._handler(method, url, **kwargs)

    def calls_to(self, suffix):
        return [c for c in self.calls if c[1].endswith(suffix)]


class FakeGateway:
    """In-memory gateway keyed by id -> order value."""

    name = "fake"

    def __init__(self, orders, query_ids=None, fail=None):
        self.orders = dict(orders)
        self.query_ids = list(query_ids) if query_ids is not None else sorted(
            self.orders, key=lambda i: (self.orders[i] is None, self.orders[i] or 0, i)
        )
        self.fail = dict(fail or {})
        self.queries = []
        self.patches = []
        self._lock = threading.Lock()

    def run_query(self, query_text, top=None, deadline=None):
        self.queries.append(query_text)
        yield from self.query_ids

    def fetch_details(self, ids, fields=None, deadline=None):
        return {
            i: WorkItem(id=i, title=f"Item {i}", order=self.orders.get(i))
            for i in ids
        }

    def patch_work_item(self, item_id, operations, deadline=None):
        with self._lock:
            self.patches.append((item_id, list(operations)))
        if item_id in self.fail:
            raise self.fail[item_id]
        for op in operations:
            self.orders[item_id] = op.value
        return WorkItem(id=item_id, order=self.orders[item_id])


@pytest.fixture
def gateway_config():
    """Gateway config with instant backoff."""
    return GatewayConfig(
        organization_url="https://dev.azure.com/fabrikam",
        project="Fabrikam Fiber",
        token="secret-pat",
        retry=RetryPolicy(max_retries=3, backoff_base_s=0.5, backoff_max_s=8.0),
    )


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_gateway():
    return FakeGateway


@pytest.fixture
def rejected():
    """Factory for a non-retryable gateway error."""
    def make(item_id, status_code=403):
        return RequestRejected("forbidden", item_id=item_id, status_code=status_code)
    return make
