"""Tests for the MongoDB storefront repository."""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from bson import Decimal128, ObjectId
from pymongo.errors import BulkWriteError

from marmita_checkout.checkout.repository import AsyncStorefront, StorefrontRepository
from marmita_checkout.errors import SubmissionError
from marmita_checkout.utils.config import Config


@pytest.fixture
def collections():
    names = [
        "products",
        "delivery_areas",
        "addresses",
        "orders",
        "order_items",
        "app_settings",
        "product_changeable_foods",
    ]
    return {name: MagicMock(name=name) for name in names}


@pytest.fixture
def mongo_client(collections):
    with patch("marmita_checkout.checkout.repository.MongoClient") as mock_client_cls:
        client = mock_client_cls.return_value
        database = MagicMock()
        database.__getitem__.side_effect = collections.__getitem__
        client.__getitem__.return_value = database
        yield client


def _repository(use_transactions=True):
    return StorefrontRepository(
        url="mongodb://localhost:27017",
        db_name="test_marmitas",
        use_transactions=use_transactions,
        config=Config(),
    )


def _order_payload():
    header = {
        "user_id": "u-1",
        "address_id": "addr-1",
        "payment_method": "pix",
        "status": "pending",
        "subtotal": Decimal("59.90"),
        "delivery_fee": Decimal("5.90"),
        "total": Decimal("65.80"),
    }
    rows = [
        {"product_id": 1, "quantity": 1, "price": Decimal("29.90"), "notes": None},
        {"product_id": 2, "quantity": 2, "price": Decimal("15.00"), "notes": "sem sal"},
        {"product_id": 1, "quantity": 1, "price": Decimal("29.90"), "notes": "extra"},
    ]
    return header, rows


class TestStorefrontRepository:
    """Test cases for repository reads."""

    def test_requires_connection_url(self):
        with pytest.raises(ValueError):
            StorefrontRepository(config=Config())

    def test_context_manager_connects_and_closes(self, mongo_client):
        with _repository() as repository:
            assert repository._client is mongo_client
        mongo_client.close.assert_called_once()

    def test_get_product(self, mongo_client, collections):
        collections["products"].find_one.return_value = {
            "id": 1,
            "stock": 4,
            "is_active": True,
            "price": Decimal128("29.90"),
            "title": "Frango",
            "images": ["/img/frango.png"],
        }

        product = _repository().get_product(1)

        assert product.price == Decimal("29.90")
        assert product.image_ref == "/img/frango.png"
        query = collections["products"].find_one.call_args[0][0]
        assert query == {"id": 1, "deleted_at": None}

    def test_get_product_missing(self, mongo_client, collections):
        collections["products"].find_one.return_value = None
        assert _repository().get_product(99) is None

    def test_get_delivery_areas(self, mongo_client, collections):
        collections["delivery_areas"].find.return_value = [
            {"name": "Cambuí", "type": "variable", "state": "SP", "city": "Campinas",
             "neighborhood": "Cambuí", "price": Decimal128("5.90"), "is_active": True},
        ]

        areas = _repository().get_delivery_areas()

        assert areas[0].price == Decimal("5.90")
        collections["delivery_areas"].find.assert_called_once_with({"is_active": True})

    def test_substitution_rows_require_flag(self, mongo_client, collections):
        collections["products"].find_one.return_value = {"allows_food_changes": False}
        assert _repository().get_substitution_rows(1) == []
        collections["product_changeable_foods"].find.assert_not_called()

    def test_get_order_invalid_id(self, mongo_client):
        assert _repository().get_order("not-an-object-id") is None

    def test_get_order_joins_rows(self, mongo_client, collections):
        oid = ObjectId()
        collections["orders"].find_one.return_value = {
            "_id": oid,
            "user_id": "u-1",
            "address_id": "addr-1",
            "payment_method": "pix",
            "subtotal": Decimal128("20.00"),
            "delivery_fee": Decimal128("5.90"),
            "total": Decimal128("25.90"),
            "status": "delivered",
        }
        collections["order_items"].find.return_value = [
            {"order_id": oid, "product_id": 1, "quantity": 2, "price": Decimal128("10.00"), "notes": None},
        ]
        collections["products"].find.return_value = [{"id": 1, "title": "Frango", "images": []}]

        order = _repository().get_order(str(oid))

        assert order.id == str(oid)
        assert order.status == "delivered"
        assert order.items[0].title == "Frango"
        assert order.items[0].unit_price == Decimal("10.00")


class TestCreateOrder:
    """Test cases for the atomic order write."""

    def test_transaction_path(self, mongo_client, collections):
        session = mongo_client.start_session.return_value.__enter__.return_value
        session.with_transaction.side_effect = lambda callback: callback(session)
        oid = ObjectId()
        collections["orders"].insert_one.return_value.inserted_id = oid
        collections["products"].update_one.return_value.modified_count = 1

        header, rows = _order_payload()
        order_id = _repository(use_transactions=True).create_order(header, rows)

        assert order_id == str(oid)
        document = collections["orders"].insert_one.call_args[0][0]
        assert document["total"] == Decimal128("65.80")
        assert "created_at" in document
        item_docs = collections["order_items"].insert_many.call_args[0][0]
        assert all(doc["order_id"] == oid for doc in item_docs)
        # Two rows for product 1 become a single decrement of 2
        decrements = [c[0] for c in collections["products"].update_one.call_args_list]
        assert decrements[0] == (
            {"id": 1, "is_active": True, "stock": {"$gte": 2}},
            {"$inc": {"stock": -2}},
        )
        assert len(decrements) == 2

    def test_stock_conflict_aborts_transaction(self, mongo_client, collections):
        session = mongo_client.start_session.return_value.__enter__.return_value
        session.with_transaction.side_effect = lambda callback: callback(session)
        collections["products"].update_one.return_value.modified_count = 0

        header, rows = _order_payload()
        with pytest.raises(SubmissionError) as exc_info:
            _repository(use_transactions=True).create_order(header, rows)

        assert exc_info.value.code == "StockConflict"

    def test_compensation_undoes_partial_write(self, mongo_client, collections):
        oid = ObjectId()
        collections["orders"].insert_one.return_value.inserted_id = oid
        first, second = MagicMock(modified_count=1), MagicMock(modified_count=0)
        collections["products"].update_one.side_effect = [first, second, MagicMock()]

        header, rows = _order_payload()
        with pytest.raises(SubmissionError) as exc_info:
            _repository(use_transactions=False).create_order(header, rows)

        assert exc_info.value.code == "StockConflict"
        mongo_client.start_session.assert_not_called()
        collections["orders"].delete_one.assert_called_once_with({"_id": oid})
        collections["order_items"].delete_many.assert_called_once_with({"order_id": oid})
        restore = collections["products"].update_one.call_args_list[-1]
        assert restore[0] == ({"id": 1}, {"$inc": {"stock": 2}})

    def test_partial_item_insert_is_rolled_back(self, mongo_client, collections):
        oid = ObjectId()
        collections["orders"].insert_one.return_value.inserted_id = oid
        collections["order_items"].insert_many.side_effect = BulkWriteError(
            {"nInserted": 1, "writeErrors": [{"index": 1, "code": 11000, "errmsg": "duplicate"}]}
        )

        header, rows = _order_payload()
        with pytest.raises(BulkWriteError):
            _repository(use_transactions=False).create_order(header, rows)

        collections["order_items"].delete_many.assert_called_once_with({"order_id": oid})
        collections["orders"].delete_one.assert_called_once_with({"_id": oid})
        collections["products"].update_one.assert_not_called()

    def test_failed_compensation_is_partial_write(self, mongo_client, collections):
        collections["orders"].insert_one.return_value.inserted_id = ObjectId()
        collections["order_items"].insert_many.side_effect = ConnectionError("lost")
        collections["order_items"].delete_many.side_effect = ConnectionError("still lost")
        collections["orders"].delete_one.side_effect = ConnectionError("still lost")

        header, rows = _order_payload()
        with pytest.raises(SubmissionError) as exc_info:
            _repository(use_transactions=False).create_order(header, rows)

        assert exc_info.value.code == "PartialWrite"


class TestAsyncStorefront:
    """Test cases for the thread-offloading adapter."""

    def test_delegates_to_repository(self):
        repository = MagicMock()
        repository.get_setting.return_value = {"pix": {"enabled": True}}
        storefront = AsyncStorefront(repository)

        value = asyncio.run(storefront.get_setting("payment_methods"))

        assert value == {"pix": {"enabled": True}}
        repository.get_setting.assert_called_once_with("payment_methods")
