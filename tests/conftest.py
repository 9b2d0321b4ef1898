import hashlib
import hmac

import pytest
from fastapi.testclient import TestClient

from course_payments.config import Settings
from course_payments.errors import StoreError
from course_payments.main import app as fastapi_app
from course_payments.razorpay_service import RazorpayGateway
from course_payments.reconciliation import Reconciler

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "whsec_test"


def _column(letter):
    return ord(letter) - ord("A")


class FakeLedger:
    """In-memory ledger with the same interface as SheetsLedger."""

    def __init__(self, rows=None):
        self.rows = [list(row) for row in (rows or [])]
        self.fail = False
        self.calls = []

    def _check(self, name):
        self.calls.append(name)
        if self.fail:
            raise StoreError(f"{name} failed")

    async def append_row(self, values):
        self._check("append_row")
        self.rows.append(list(values))
        return {}

    async def get_all_rows(self):
        self._check("get_all_rows")
        return [list(row) for row in self.rows]

    async def find_row_by_order_id(self, order_id):
        self._check("find_row_by_order_id")
        for i, row in enumerate(self.rows):
            if len(row) > 9 and row[9] == order_id:
                return i + 1
        return None

    async def update_row(self, row_index, values):
        return await self.update_row_range(row_index, "G", "L", values)

    async def update_row_range(self, row_index, start_column, end_column, values):
        self._check("update_row_range")
        row = self.rows[row_index - 1]
        row.extend([""] * (12 - len(row)))
        start, end = _column(start_column), _column(end_column)
        row[start:end + 1] = list(values)
        return {}

    async def clear_row_range(self, row_index, start_column, end_column):
        self._check("clear_row_range")
        row = self.rows[row_index - 1]
        row.extend([""] * (12 - len(row)))
        for i in range(_column(start_column), _column(end_column) + 1):
            row[i] = ""
        return {}


def sign_webhook(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def settings():
    return Settings(
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=KEY_SECRET,
        spreadsheet_id="sheet-123",
        razorpay_webhook_secret=WEBHOOK_SECRET,
        base_url="https://payments.example.com",
    )


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def sdk(mocker):
    # Stand-in for razorpay.Client
    return mocker.Mock()


@pytest.fixture
def gateway(sdk):
    return RazorpayGateway("rzp_test_key", KEY_SECRET, client=sdk)


@pytest.fixture
def reconciler(ledger, gateway, settings):
    return Reconciler(ledger, gateway, settings)


@pytest.fixture
def client(reconciler):
    fastapi_app.state.settings = reconciler.settings
    fastapi_app.state.reconciler = reconciler
    with TestClient(fastapi_app, raise_server_exceptions=False) as c:
        yield c
    del fastapi_app.state.reconciler
    del fastapi_app.state.settings
