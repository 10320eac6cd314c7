"""Order Store backends: JSON sidecars on disk, or one SQL table.

Both keep `order_id` and `order_number` consistent: a `put` makes the record
visible under both keys or under neither. Records are write-once.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from voucherpay.common.config import Settings
from voucherpay.common.db import make_session_factory
from voucherpay.common.errors import DuplicateOrderError
from voucherpay.common.files import create_exclusive, is_safe_key
from voucherpay.common.logging import logger
from voucherpay.services.orders.models import OrderRecord, OrderRow


class OrderStore(ABC):
    @abstractmethod
    def put(self, record: OrderRecord) -> None: ...

    @abstractmethod
    def get_by_order_id(self, order_id: str) -> OrderRecord | None: ...

    @abstractmethod
    def get_by_order_number(self, order_number: str) -> OrderRecord | None: ...

    def lookup(self, order_id: str | None = None, order_number: str | None = None) -> OrderRecord | None:
        """Find a record by whichever identifier is given, preferring `order_id`."""

        if order_id:
            record = self.get_by_order_id(order_id)
            if record is not None or not order_number:
                return record
        if order_number:
            return self.get_by_order_number(order_number)
        return None


class FileOrderStore(OrderStore):
    """Dual-indexed JSON sidecars: `{order_number}.json` and `{order_id}.json`.

    The number index is linked in first and the id index last; the id file is
    the commit record, so a number lookup whose id file is missing is treated
    as absent.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> OrderRecord | None:
        if not is_safe_key(key):
            return None
        try:
            raw = self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return OrderRecord.model_validate_json(raw)

    def put(self, record: OrderRecord) -> None:
        if not is_safe_key(record.order_id) or not is_safe_key(record.order_number):
            raise ValueError(f"unsafe order key: {record.order_id!r}/{record.order_number!r}")
        if record.order_id == record.order_number:
            raise ValueError("order_id and order_number must differ")
        data = record.model_dump_json().encode("utf-8")
        number_path = self._path(record.order_number)
        id_path = self._path(record.order_id)
        if id_path.exists():
            raise DuplicateOrderError(f"order {record.order_id} already stored")
        if not create_exclusive(number_path, data):
            raise DuplicateOrderError(f"order number {record.order_number} already stored")
        try:
            committed = create_exclusive(id_path, data)
        except BaseException:
            number_path.unlink(missing_ok=True)
            raise
        if not committed:
            number_path.unlink(missing_ok=True)
            raise DuplicateOrderError(f"order {record.order_id} already stored")
        logger.info("order stored order_id=%s order_number=%s", record.order_id, record.order_number)

    def get_by_order_id(self, order_id: str) -> OrderRecord | None:
        record = self._read(order_id)
        if record is None or record.order_id != order_id:
            return None
        return record

    def get_by_order_number(self, order_number: str) -> OrderRecord | None:
        record = self._read(order_number)
        if record is None or record.order_number != order_number:
            return None
        if not self._path(record.order_id).exists():
            return None
        return record


class SqlOrderStore(OrderStore):
    """Orders in one SQL table; the row carries both unique keys."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def put(self, record: OrderRecord) -> None:
        with self.session_factory() as db:
            db.add(OrderRow.from_record(record))
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateOrderError(f"order {record.order_id}/{record.order_number} already stored") from exc
        logger.info("order stored order_id=%s order_number=%s", record.order_id, record.order_number)

    def get_by_order_id(self, order_id: str) -> OrderRecord | None:
        with self.session_factory() as db:
            row = db.get(OrderRow, order_id)
            return row.to_record() if row else None

    def get_by_order_number(self, order_number: str) -> OrderRecord | None:
        with self.session_factory() as db:
            row = db.execute(select(OrderRow).where(OrderRow.order_number == order_number)).scalar_one_or_none()
            return row.to_record() if row else None


def make_order_store(settings: Settings) -> OrderStore:
    """Build the backend selected by `order_store_backend`."""

    if settings.order_store_backend == "sql":
        prefix = "sqlite:///"
        if settings.database_url.startswith(prefix) and settings.database_url != "sqlite:///:memory:":
            Path(settings.database_url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)
        return SqlOrderStore(make_session_factory(settings.database_url))
    if settings.order_store_backend == "file":
        return FileOrderStore(settings.orders_dir)
    raise ValueError(f"unknown order_store_backend: {settings.order_store_backend}")
