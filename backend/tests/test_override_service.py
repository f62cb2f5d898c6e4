import unittest
from datetime import datetime
from flask import Flask

from mintgate.extensions import db
from mintgate.models import Currency, ItemOverride
from mintgate.services import override_service
from mintgate.validation import ValidationError


class OverrideServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from mintgate import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(ItemOverride).delete()
        db.session.query(Currency).delete()
        db.session.commit()

    def test_defaults_for_item_without_record(self):
        snapshot = override_service.get_snapshot(7)
        self.assertFalse(snapshot.persisted)
        self.assertTrue(snapshot.display_enabled)
        self.assertFalse(snapshot.sales_period_enabled)
        self.assertTrue(snapshot.is_unlimited)
        self.assertEqual(snapshot.total_minted, 0)
        self.assertEqual(override_service.display_order_key(snapshot), (7, 7))

    def test_replace_resets_omitted_fields(self):
        override_service.replace_override(1, {"customPrice": "2.5", "maxSupply": 100, "name": "Genesis"})
        row = override_service.replace_override(1, {"name": "Genesis"})
        self.assertIsNone(row.custom_price)
        self.assertIsNone(row.max_supply)
        self.assertEqual(row.name, "Genesis")

    def test_patch_keeps_other_fields(self):
        override_service.replace_override(1, {"custom_price": "2.5", "max_supply": 100})
        row = override_service.patch_override(1, {"sold_out_message": "Gone"})
        self.assertEqual(row.custom_price, "2.5")
        self.assertEqual(row.max_supply, 100)
        self.assertEqual(row.sold_out_message, "Gone")

    def test_replace_never_touches_total_minted(self):
        row = override_service.get_or_create(1)
        row.total_minted = 12
        db.session.commit()
        override_service.replace_override(1, {})
        self.assertEqual(override_service.get_snapshot(1).total_minted, 12)
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"total_minted": 0})

    def test_window_dates_are_parsed_and_ordered(self):
        row = override_service.patch_override(1, {
            "sales_period_enabled": "true",
            "is_unlimited": False,
            "sales_start_date": "2026-01-01T00:00:00Z",
            "sales_end_date": "2026-01-31T09:00:00+09:00",
        })
        self.assertEqual(row.sales_start_date, datetime(2026, 1, 1))
        self.assertEqual(row.sales_end_date, datetime(2026, 1, 31))
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"sales_end_date": "2025-12-31T00:00:00Z"})

    def test_rule_violations(self):
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"max_supply": 10, "reserved_supply": 11})
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"custom_price": "-1"})
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"custom_price": "free"})
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"max_supply": 1.5})
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"display_enabled": "maybe"})
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"not_a_field": 1})
        self.assertIsNone(override_service.get_override(1))

    def test_custom_currency_must_be_known(self):
        with self.assertRaises(ValidationError):
            override_service.patch_override(1, {"custom_currency": "DOGE"})
        db.session.add(Currency(symbol="USDC", address="0x" + "0d" * 20, decimals=6))
        db.session.commit()
        row = override_service.patch_override(1, {"custom_currency": "USDC"})
        self.assertEqual(row.custom_currency, "USDC")

    def test_single_default_display_item(self):
        override_service.patch_override(1, {"is_default_display": True})
        override_service.patch_override(2, {"is_default_display": True})
        self.assertFalse(override_service.get_snapshot(1).is_default_display)
        self.assertTrue(override_service.get_snapshot(2).is_default_display)

    def test_default_item_falls_back_to_display_order(self):
        override_service.patch_override(1, {"display_order": 5})
        override_service.patch_override(2, {"display_order": 1, "display_enabled": False})
        override_service.patch_override(3, {"display_order": 2})
        self.assertEqual(override_service.default_item_id([1, 2, 3]), 3)

        override_service.patch_override(1, {"is_default_display": True})
        self.assertEqual(override_service.default_item_id([1, 2, 3]), 1)

        override_service.patch_override(1, {"display_enabled": False})
        self.assertEqual(override_service.default_item_id([1, 2, 3]), 3)
        self.assertIsNone(override_service.default_item_id([]))

    def test_set_max_supply(self):
        row = override_service.set_max_supply(1, 500, 20)
        self.assertEqual((row.max_supply, row.reserved_supply), (500, 20))
        row = override_service.set_max_supply(1, None)
        self.assertEqual((row.max_supply, row.reserved_supply), (None, 0))


if __name__ == "__main__":
    unittest.main()
