# stocksynapse/database.py
import json
import logging
import os
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pydantic
from sqlalchemy import (
    Column, Double, Integer, MetaData, String, Table, Text,
    create_engine, delete, insert, select, update,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from .config import Settings
from .errors import ConfigurationError, PersistenceError
from .models import MAX_TEXT_LENGTH, Product, make_product

logger = logging.getLogger(__name__)

# This file holds the durable product stores. A store only changes what
# callers can observe once the backing medium has accepted the write.


def _new_id() -> str:
    return str(uuid.uuid4())


def _to_record(p: Product) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "price": p.price,
        "quantity": p.quantity,
        "category": p.category,
        "description": p.description,
    }


class InventoryStore(ABC):
    @abstractmethod
    def add(self, name: str, price: float, quantity: int,
            category: str = "", description: str = "") -> Product:
        ...

    @abstractmethod
    def update(self, product_id: str, name: str, price: float, quantity: int,
               category: str = "", description: str = "") -> bool:
        ...

    @abstractmethod
    def delete(self, product_id: str) -> bool:
        ...

    @abstractmethod
    def get_by_id(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    def get_all(self) -> List[Product]:
        ...


# ---------------------------
# JSON file
# ---------------------------
class JsonInventoryStore(InventoryStore):
    """
    Whole collection kept in memory and mirrored to one JSON array on disk.

    Every mutation writes the complete new collection to a temporary file next
    to the target and renames it into place; the in-memory list is swapped
    only after that succeeds. Order is insertion order.

    Mutations hold one lock from reading the current list until the swap.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._products: List[Product] = self._load()

    def _load(self) -> List[Product]:
        if not self.path.exists():
            logger.info("No inventory file at %s, starting empty", self.path)
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read inventory file {self.path}: {e}") from e

        if not isinstance(data, list):
            raise PersistenceError(f"Inventory file {self.path} does not contain a JSON array")

        products = []
        seen = set()
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                raise PersistenceError(f"Inventory file {self.path}: entry {i} is not an object")
            try:
                p = Product(
                    id=item.get("id"),
                    name=item.get("name"),
                    price=item.get("price"),
                    quantity=item.get("quantity"),
                    category=item.get("category", ""),
                    description=item.get("description", ""),
                )
            except pydantic.ValidationError as e:
                raise PersistenceError(f"Inventory file {self.path}: entry {i} is invalid: {e}") from e
            if p.id in seen:
                raise PersistenceError(f"Inventory file {self.path}: duplicate id {p.id}")
            seen.add(p.id)
            products.append(p)

        logger.debug("Loaded %d products from %s", len(products), self.path)
        return products

    def _save(self, products: List[Product]) -> None:
        payload = json.dumps([_to_record(p) for p in products], indent=4)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.error("Failed to write inventory file %s: %s", self.path, e)
            raise PersistenceError(f"Failed to save inventory to {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning("Could not remove temporary file %s", tmp_name)
        logger.debug("Saved %d products to %s", len(products), self.path)

    def _commit(self, products: List[Product]) -> None:
        self._save(products)
        self._products = products

    def add(self, name, price, quantity, category="", description=""):
        product = make_product(_new_id(), name, price, quantity, category, description)
        with self._lock:
            self._commit(self._products + [product])
        return product

    def update(self, product_id, name, price, quantity, category="", description=""):
        replacement = make_product(product_id, name, price, quantity, category, description)
        with self._lock:
            for i, existing in enumerate(self._products):
                if existing.id == product_id:
                    products = list(self._products)
                    products[i] = replacement
                    self._commit(products)
                    return True
        return False

    def delete(self, product_id):
        with self._lock:
            products = [p for p in self._products if p.id != product_id]
            if len(products) == len(self._products):
                return False
            self._commit(products)
        return True

    def get_by_id(self, product_id):
        for p in self._products:
            if p.id == product_id:
                return p
        return None

    def get_all(self):
        return list(self._products)


# ---------------------------
# Relational table
# ---------------------------
metadata = MetaData()

products_table = Table(
    "products",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(MAX_TEXT_LENGTH), nullable=False),
    Column("price", Double, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("category", String(MAX_TEXT_LENGTH), nullable=False, default=""),
    Column("description", Text, nullable=False, default=""),
)


def build_engine(db_url: Optional[str], db_user: Optional[str] = None,
                 db_password: Optional[str] = None) -> Engine:
    if not db_url:
        raise ConfigurationError("DB_URL is not set; the sql inventory backend needs it.")
    try:
        url = make_url(db_url)
        if db_user:
            url = url.set(username=db_user)
        if db_password:
            url = url.set(password=db_password)
        return create_engine(url)
    except ArgumentError as e:
        raise ConfigurationError(f"DB_URL is not usable: {e}") from e


class SqlInventoryStore(InventoryStore):
    """
    One row per product. Nothing is cached: every call is a single statement
    in its own transaction, so a failed write leaves the table as it was.
    Listing is ordered by name.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        try:
            metadata.create_all(engine)
        except SQLAlchemyError as e:
            logger.error("Could not prepare products table: %s", e)
            raise PersistenceError(f"Could not prepare products table: {e}") from e

    @classmethod
    def from_url(cls, db_url, db_user=None, db_password=None) -> "SqlInventoryStore":
        return cls(build_engine(db_url, db_user, db_password))

    @staticmethod
    def _row_to_product(row) -> Product:
        try:
            return Product(
                id=row.id,
                name=row.name,
                price=row.price,
                quantity=row.quantity,
                category=row.category or "",
                description=row.description or "",
            )
        except pydantic.ValidationError as e:
            raise PersistenceError(f"Stored product {row.id} is invalid: {e}") from e

    def _fail(self, action: str, e: Exception):
        logger.error("Failed to %s: %s", action, e)
        return PersistenceError(f"Failed to {action} in the database: {e}")

    def add(self, name, price, quantity, category="", description=""):
        product = make_product(_new_id(), name, price, quantity, category, description)
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(products_table).values(**_to_record(product)))
        except SQLAlchemyError as e:
            raise self._fail("add product", e) from e
        return product

    def update(self, product_id, name, price, quantity, category="", description=""):
        product = make_product(product_id, name, price, quantity, category, description)
        values = _to_record(product)
        del values["id"]
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(products_table).where(products_table.c.id == product_id).values(**values)
                )
                changed = result.rowcount > 0
        except SQLAlchemyError as e:
            raise self._fail("update product", e) from e
        return changed

    def delete(self, product_id):
        try:
            with self.engine.begin() as conn:
                result = conn.execute(delete(products_table).where(products_table.c.id == product_id))
                changed = result.rowcount > 0
        except SQLAlchemyError as e:
            raise self._fail("delete product", e) from e
        return changed

    def get_by_id(self, product_id):
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(products_table).where(products_table.c.id == product_id)
                ).first()
        except SQLAlchemyError as e:
            raise self._fail("retrieve product", e) from e
        return self._row_to_product(row) if row is not None else None

    def get_all(self):
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    select(products_table).order_by(products_table.c.name, products_table.c.id)
                ).all()
        except SQLAlchemyError as e:
            raise self._fail("retrieve all products", e) from e
        return [self._row_to_product(r) for r in rows]


def create_store(settings: Settings) -> InventoryStore:
    if settings.inventory_backend == "sql":
        return SqlInventoryStore.from_url(settings.db_url, settings.db_user, settings.db_password)
    return JsonInventoryStore(settings.inventory_file)
