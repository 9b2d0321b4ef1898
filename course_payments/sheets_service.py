import asyncio
import logging
from typing import Any, List, Optional

from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from course_payments.errors import StoreError
from course_payments.models import ORDER_ID_INDEX, PAYMENT_END_COLUMN, PAYMENT_START_COLUMN

logger = logging.getLogger("course_payments.sheets")


def build_sheets_service(credentials):
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


class SheetsLedger:
    """
    Enrollment ledger stored in a single Google Sheets worksheet.

    Rows are addressed by their 1-based sheet row number. There is no
    locking: updates are last-write-wins and two concurrent misses on the
    same order ID both append.
    """

    def __init__(self, service, spreadsheet_id: str, append_range: str = "Sheet1!A1"):
        self._service = service
        self.spreadsheet_id = spreadsheet_id
        self.append_range = append_range
        name, sep, _ = append_range.partition("!")
        self.worksheet = name if sep else "Sheet1"

    async def _execute(self, request, action: str):
        try:
            return await asyncio.get_event_loop().run_in_executor(None, request.execute)
        except (HttpError, GoogleAuthError, OSError) as e:
            logger.error(f"Sheets API call failed while {action}: {e}")
            raise StoreError(f"Sheets API call failed while {action}: {e}") from e

    def _values(self):
        return self._service.spreadsheets().values()

    def _row_range(self, row_index: int, start_column: str, end_column: str) -> str:
        return f"{self.worksheet}!{start_column}{row_index}:{end_column}{row_index}"

    async def append_row(self, values: List[Any]) -> dict:
        request = self._values().append(
            spreadsheetId=self.spreadsheet_id,
            range=self.append_range,
            valueInputOption="USER_ENTERED",
            body={"values": [values]},
        )
        result = await self._execute(request, "appending a row")
        logger.info("Row appended")
        return result

    async def get_all_rows(self) -> List[List[Any]]:
        request = self._values().get(
            spreadsheetId=self.spreadsheet_id,
            range=f"{self.worksheet}!A:Z",
        )
        result = await self._execute(request, "reading all rows")
        return result.get("values", [])

    async def find_row_by_order_id(self, order_id: str) -> Optional[int]:
        """Return the 1-based row number of the first row whose column J equals ``order_id``."""
        rows = await self.get_all_rows()
        for i, row in enumerate(rows):
            if len(row) > ORDER_ID_INDEX and row[ORDER_ID_INDEX] == order_id:
                logger.debug(f"Order {order_id} found at row {i + 1}")
                return i + 1

        logger.info(f"Order {order_id} not found in {len(rows)} rows")
        return None

    async def update_row(self, row_index: int, values: List[Any]) -> dict:
        """Overwrite the payment columns G-L of a row."""
        return await self.update_row_range(row_index, PAYMENT_START_COLUMN, PAYMENT_END_COLUMN, values)

    async def update_row_range(
        self, row_index: int, start_column: str, end_column: str, values: List[Any]
    ) -> dict:
        cell_range = self._row_range(row_index, start_column, end_column)
        request = self._values().update(
            spreadsheetId=self.spreadsheet_id,
            range=cell_range,
            valueInputOption="USER_ENTERED",
            body={"values": [values]},
        )
        result = await self._execute(request, f"updating {cell_range}")
        logger.info(f"Updated {cell_range}")
        return result

    async def clear_row_range(self, row_index: int, start_column: str, end_column: str) -> dict:
        cell_range = self._row_range(row_index, start_column, end_column)
        request = self._values().clear(
            spreadsheetId=self.spreadsheet_id,
            range=cell_range,
            body={},
        )
        result = await self._execute(request, f"clearing {cell_range}")
        logger.info(f"Cleared {cell_range}")
        return result
