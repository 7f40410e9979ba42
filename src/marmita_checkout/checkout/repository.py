"""MongoDB repository for the storefront collections the checkout reads and writes."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import Decimal128, ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.client_session import ClientSession

from ..cart.identity import ProductId
from ..cart.models import LineItem
from ..errors import SubmissionError
from ..utils.config import Config
from ..utils.logging import get_logger
from ..utils.money import to_decimal
from .models import Address, DeliveryArea, Order, ProductState

logger = get_logger(__name__)

PRODUCTS = "products"
DELIVERY_AREAS = "delivery_areas"
ADDRESSES = "addresses"
ORDERS = "orders"
ORDER_ITEMS = "order_items"
APP_SETTINGS = "app_settings"
PRODUCT_FOODS = "product_changeable_foods"


def _to_bson(value: Any) -> Any:
    if isinstance(value, Decimal):
        return Decimal128(value)
    return value


def _from_bson(value: Any) -> Any:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return value


def _bson_document(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _to_bson(value) for key, value in data.items()}


class StorefrontRepository:
    def __init__(
        self,
        url: Optional[str] = None,
        db_name: Optional[str] = None,
        use_transactions: Optional[bool] = None,
        config: Optional[Config] = None,
    ) -> None:
        config = config or Config(".env")
        self._url = url or config.get("mongo_url")
        self._db = db_name or config.get("mongo_db")
        self._use_transactions = (
            config.get("use_transactions", True) if use_transactions is None else use_transactions
        )
        if not self._url:
            raise ValueError("DB_CONNECTION_URL is required")
        self._client: Optional[MongoClient] = None

    def __enter__(self) -> "StorefrontRepository":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def connect(self) -> None:
        if self._client is None:
            self._client = MongoClient(self._url, serverSelectionTimeoutMS=5000)

    def disconnect(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _collection(self, name: str):
        if self._client is None:
            self.connect()
        return self._client[self._db][name]

    # Reads

    def get_product(self, product_id: ProductId) -> Optional[ProductState]:
        doc = self._collection(PRODUCTS).find_one(
            {"id": product_id, "deleted_at": None},
            {"_id": 0, "id": 1, "stock": 1, "is_active": 1, "price": 1, "title": 1, "images": 1},
        )
        if doc is None:
            return None
        return ProductState.from_document({k: _from_bson(v) for k, v in doc.items()})

    def get_delivery_areas(self) -> List[DeliveryArea]:
        cursor = self._collection(DELIVERY_AREAS).find({"is_active": True})
        return [
            DeliveryArea.from_document({k: _from_bson(v) for k, v in doc.items()})
            for doc in cursor
        ]

    def get_address(self, address_id: str) -> Optional[Address]:
        doc = self._collection(ADDRESSES).find_one({"id": address_id})
        if doc is None:
            return None
        return Address.from_document(doc)

    def get_setting(self, key: str) -> Any:
        doc = self._collection(APP_SETTINGS).find_one({"key": key})
        return doc.get("value") if doc else None

    def get_substitution_rows(self, product_id: ProductId) -> List[Dict[str, Any]]:
        product = self._collection(PRODUCTS).find_one(
            {"id": product_id}, {"_id": 0, "allows_food_changes": 1}
        )
        if not product or not product.get("allows_food_changes"):
            return []
        return list(self._collection(PRODUCT_FOODS).find({"product_id": product_id}, {"_id": 0}))

    def get_order(self, order_id: str) -> Optional[Order]:
        try:
            oid = ObjectId(order_id)
        except (InvalidId, TypeError):
            return None

        header = self._collection(ORDERS).find_one({"_id": oid})
        if header is None:
            return None

        rows = list(self._collection(ORDER_ITEMS).find({"order_id": oid}))
        product_ids = [row["product_id"] for row in rows]
        products = {
            doc["id"]: doc
            for doc in self._collection(PRODUCTS).find(
                {"id": {"$in": product_ids}}, {"_id": 0, "id": 1, "title": 1, "images": 1}
            )
        }

        items = []
        for row in rows:
            product = products.get(row["product_id"], {})
            images = product.get("images") or []
            items.append(
                LineItem(
                    product_id=row["product_id"],
                    title=product.get("title", ""),
                    unit_price=to_decimal(_from_bson(row["price"])),
                    quantity=int(row["quantity"]),
                    image_ref=images[0] if images else "",
                    notes=row.get("notes"),
                )
            )

        return Order(
            id=str(header["_id"]),
            user_id=header.get("user_id", ""),
            address_id=header.get("address_id", ""),
            payment_method=header.get("payment_method", ""),
            subtotal=to_decimal(_from_bson(header["subtotal"])),
            delivery_fee=to_decimal(_from_bson(header["delivery_fee"])),
            total=to_decimal(_from_bson(header["total"])),
            status=header.get("status", "pending"),
            items=items,
        )

    # Writes

    def create_order(self, header: Dict[str, Any], rows: List[Dict[str, Any]]) -> str:
        """Insert the order header, its rows and the stock decrements as one unit.

        Uses a multi-document transaction when enabled; otherwise undoes
        whatever was written if a later step fails.
        """
        if self._client is None:
            self.connect()

        if self._use_transactions:
            with self._client.start_session() as session:
                order_id = session.with_transaction(
                    lambda s: self._write_order(header, rows, s, undo=None)
                )
            return str(order_id)

        undo: List[Callable[[], Any]] = []
        try:
            order_id = self._write_order(header, rows, None, undo=undo)
        except Exception:
            self._compensate(undo)
            raise
        return str(order_id)

    def _write_order(
        self,
        header: Dict[str, Any],
        rows: List[Dict[str, Any]],
        session: Optional[ClientSession],
        undo: Optional[List[Callable[[], Any]]],
    ) -> ObjectId:
        orders = self._collection(ORDERS)
        order_items = self._collection(ORDER_ITEMS)
        products = self._collection(PRODUCTS)

        document = _bson_document(header)
        document["created_at"] = datetime.now(timezone.utc)
        order_id = orders.insert_one(document, session=session).inserted_id
        if undo is not None:
            undo.append(lambda: orders.delete_one({"_id": order_id}))

        item_docs = [_bson_document({**row, "order_id": order_id}) for row in rows]
        if item_docs:
            # A failed ordered insert may still have written its first rows
            if undo is not None:
                undo.append(lambda: order_items.delete_many({"order_id": order_id}))
            order_items.insert_many(item_docs, session=session)

        for product_id, quantity in _quantities_by_product(rows):
            result = products.update_one(
                {"id": product_id, "is_active": True, "stock": {"$gte": quantity}},
                {"$inc": {"stock": -quantity}},
                session=session,
            )
            if result.modified_count != 1:
                raise SubmissionError(
                    "Some items sold out while your order was being placed. Please review your cart.",
                    code="StockConflict",
                )
            if undo is not None:
                undo.append(
                    lambda pid=product_id, qty=quantity: products.update_one(
                        {"id": pid}, {"$inc": {"stock": qty}}
                    )
                )

        return order_id

    def _compensate(self, undo: List[Callable[[], Any]]) -> None:
        logger.error(f"Order write failed; rolling back {len(undo)} step(s)")
        failures = []
        for step in reversed(undo):
            try:
                step()
            except Exception as e:
                logger.error(f"Rollback step failed: {e}")
                failures.append(e)
        if failures:
            raise SubmissionError(
                "Your order could not be completed and needs attention. Please contact us.",
                code="PartialWrite",
            ) from failures[0]


def _quantities_by_product(rows: List[Dict[str, Any]]) -> List[Tuple[ProductId, int]]:
    totals: Dict[ProductId, int] = {}
    for row in rows:
        totals[row["product_id"]] = totals.get(row["product_id"], 0) + int(row["quantity"])
    return list(totals.items())


class AsyncStorefront:
    """Runs repository calls on worker threads so checkout I/O does not block the loop."""

    def __init__(self, repository: StorefrontRepository) -> None:
        self.repository = repository

    async def get_product(self, product_id: ProductId) -> Optional[ProductState]:
        return await asyncio.to_thread(self.repository.get_product, product_id)

    async def get_delivery_areas(self) -> List[DeliveryArea]:
        return await asyncio.to_thread(self.repository.get_delivery_areas)

    async def get_address(self, address_id: str) -> Optional[Address]:
        return await asyncio.to_thread(self.repository.get_address, address_id)

    async def get_setting(self, key: str) -> Any:
        return await asyncio.to_thread(self.repository.get_setting, key)

    async def get_substitution_rows(self, product_id: ProductId) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.repository.get_substitution_rows, product_id)

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await asyncio.to_thread(self.repository.get_order, order_id)

    async def create_order(self, header: Dict[str, Any], rows: List[Dict[str, Any]]) -> str:
        return await asyncio.to_thread(self.repository.create_order, header, rows)
