import unittest
from decimal import Decimal

from app import create_app
from config import Config
from extensions import db
from models import CostEstimateItem, User
from workflow import (
    CapabilityError,
    GuardFailedError,
    NotFoundError,
    ValidationError,
    add_cost_estimate_item,
    approve_cost_estimate,
    create_cost_estimate,
    create_purchase_order,
    remove_cost_estimate_item,
    update_cost_estimate_item,
    validate_purchase_order,
)
from workflow.inputs import amount_error, parse_decimal, quantize_amount
from workflow.line_items import clean_items


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret"


class CleanItemsTestCase(unittest.TestCase):
    def test_valid_items_are_quantized(self):
        errors = {}
        cleaned = clean_items(
            [
                {
                    "description": " Cement ",
                    "unit": "bag",
                    "quantity": "1.5",
                    "unit_price": 0.1,
                    "item_code": "CM-01",
                    "total_price": "999999",
                }
            ],
            errors,
        )

        self.assertEqual(errors, {})
        self.assertEqual(cleaned[0]["description"], "Cement")
        self.assertEqual(cleaned[0]["quantity"], Decimal("1.50"))
        self.assertEqual(cleaned[0]["unit_price"], Decimal("0.10"))
        self.assertNotIn("total_price", cleaned[0])

    def test_errors_are_keyed_by_index_and_field(self):
        errors = {}
        clean_items(
            [
                {"description": "Ok", "unit": "pcs", "quantity": 1, "unit_price": 1},
                {
                    "description": "x" * 256,
                    "unit": "",
                    "quantity": "-1",
                    "unit_price": "-0.01",
                    "item_code": "c" * 51,
                },
                {"description": "Text", "unit": "pcs", "quantity": "many", "unit_price": "Infinity"},
            ],
            errors,
        )

        self.assertEqual(
            set(errors),
            {
                "items.1.description",
                "items.1.unit",
                "items.1.quantity",
                "items.1.unit_price",
                "items.1.item_code",
                "items.2.quantity",
                "items.2.unit_price",
            },
        )

    def test_empty_or_non_list_input_is_rejected(self):
        for raw in ([], None, "items", {"description": "not a list"}):
            errors = {}
            self.assertEqual(clean_items(raw, errors), [])
            self.assertIn("items", errors)

    def test_more_than_two_decimal_places_is_rejected(self):
        errors = {}
        clean_items(
            [
                {"description": "Sand", "unit": "kg", "quantity": "1.005", "unit_price": "2"},
                {"description": "Grit", "unit": "kg", "quantity": "0.004", "unit_price": "1.999"},
            ],
            errors,
        )

        self.assertEqual(
            errors,
            {
                "items.0.quantity": "Quantity cannot have more than 2 decimal places.",
                "items.1.quantity": "Quantity cannot have more than 2 decimal places.",
                "items.1.unit_price": "Unit price cannot have more than 2 decimal places.",
            },
        )

    def test_amounts_must_fit_their_columns(self):
        errors = {}
        clean_items(
            [
                {"description": "Huge", "unit": "pcs", "quantity": "1e30", "unit_price": "1"},
                {"description": "Dear", "unit": "pcs", "quantity": "1", "unit_price": "-1e30"},
                {"description": "Wide", "unit": "pcs", "quantity": "100000000", "unit_price": "1"},
                {"description": "Pricy", "unit": "pcs", "quantity": "1", "unit_price": "1e10"},
            ],
            errors,
        )

        self.assertEqual(
            set(errors),
            {
                "items.0.quantity",
                "items.1.unit_price",
                "items.2.quantity",
                "items.3.unit_price",
            },
        )
        self.assertEqual(errors["items.2.quantity"], "Quantity must be less than 100,000,000.")

    def test_line_total_must_fit_its_column(self):
        errors = {}
        cleaned = clean_items(
            [
                {
                    "description": "Turbines",
                    "unit": "pcs",
                    "quantity": "99999999",
                    "unit_price": "9999999999",
                }
            ],
            errors,
        )

        self.assertEqual(cleaned, [])
        self.assertEqual(set(errors), {"items.0.total_price"})

    def test_estimate_total_must_fit_its_column(self):
        item = {
            "description": "Bridge section",
            "unit": "pcs",
            "quantity": "1000",
            "unit_price": "6000000000",
        }
        errors = {}
        clean_items([item, dict(item)], errors)

        self.assertEqual(
            errors, {"items": "Total amount must be less than 10,000,000,000,000."}
        )

    def test_zero_unit_price_is_allowed(self):
        errors = {}
        clean_items([{"description": "Free", "unit": "pcs", "quantity": 1, "unit_price": 0}], errors)
        self.assertEqual(errors, {})

    def test_decimal_parsing_helpers(self):
        self.assertEqual(parse_decimal("1,250.50"), Decimal("1250.50"))
        self.assertIsNone(parse_decimal("abc"))
        self.assertIsNone(parse_decimal(True))
        self.assertIsNone(parse_decimal("NaN"))
        self.assertEqual(quantize_amount(Decimal("2.345")), Decimal("2.35"))
        self.assertEqual(quantize_amount(Decimal("2.344")), Decimal("2.34"))
        self.assertIsNone(amount_error(Decimal("12.50"), "Amount", 10))
        self.assertEqual(
            amount_error(Decimal("1e30"), "Amount", 10), "Amount must be less than 100,000,000."
        )


class CostEstimateItemOperationsTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.drop_all()
        db.create_all()

        self.bsp = self._create_user("bsp")
        self.dau = self._create_user("dau")
        purchase_order = create_purchase_order(self.bsp, {"title": "Warehouse racks"})
        validate_purchase_order(self.bsp, purchase_order.id)
        self.cost_estimate = create_cost_estimate(
            self.bsp,
            purchase_order.id,
            {"title": "Racks", "type": "bill_of_quantities"},
            [
                {"description": "Rack", "unit": "pcs", "quantity": "4", "unit_price": "250"},
                {"description": "Bolts", "unit": "box", "quantity": "2", "unit_price": "12.50"},
            ],
        )

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _create_user(self, role: str) -> User:
        user = User(name=role.title(), email=f"{role}@example.com", role=role)
        user.set_password("password123")
        db.session.add(user)
        db.session.commit()
        return user

    def _item_sum(self) -> Decimal:
        return sum((item.total_price for item in self.cost_estimate.items), Decimal("0.00"))

    def test_initial_total(self):
        self.assertEqual(self.cost_estimate.total_amount, Decimal("1025.00"))

    def test_add_item_appends_and_recomputes(self):
        item = add_cost_estimate_item(
            self.bsp,
            self.cost_estimate.id,
            {"description": "Shelf", "unit": "pcs", "quantity": "3", "unit_price": "33.33"},
        )

        self.assertEqual(item.sort_order, 2)
        self.assertEqual(item.total_price, Decimal("99.99"))
        self.assertEqual(self.cost_estimate.total_amount, Decimal("1124.99"))
        self.assertEqual(self.cost_estimate.total_amount, self._item_sum())

    def test_add_item_reports_single_item_errors(self):
        with self.assertRaises(ValidationError) as excinfo:
            add_cost_estimate_item(self.bsp, self.cost_estimate.id, {"description": "Shelf"})

        self.assertEqual(
            set(excinfo.exception.errors), {"item.unit", "item.quantity", "item.unit_price"}
        )
        self.assertEqual(len(self.cost_estimate.items), 2)

    def test_add_item_rejects_huge_quantity(self):
        with self.assertRaises(ValidationError) as excinfo:
            add_cost_estimate_item(
                self.bsp,
                self.cost_estimate.id,
                {"description": "Shelf", "unit": "pcs", "quantity": "1e30", "unit_price": "1"},
            )

        self.assertEqual(set(excinfo.exception.errors), {"item.quantity"})
        self.assertEqual(len(self.cost_estimate.items), 2)

    def test_add_item_cannot_push_total_past_column_limit(self):
        with self.assertRaises(ValidationError) as excinfo:
            add_cost_estimate_item(
                self.bsp,
                self.cost_estimate.id,
                {
                    "description": "Crane",
                    "unit": "pcs",
                    "quantity": "1000",
                    "unit_price": "9999999999.99",
                },
            )

        self.assertEqual(set(excinfo.exception.errors), {"items"})
        self.assertEqual(self.cost_estimate.total_amount, Decimal("1025.00"))
        self.assertEqual(CostEstimateItem.query.count(), 2)

    def test_update_item_rejects_extra_decimal_places(self):
        rack = self.cost_estimate.items[0]

        with self.assertRaises(ValidationError) as excinfo:
            update_cost_estimate_item(
                self.bsp,
                self.cost_estimate.id,
                rack.id,
                {"description": "Rack", "unit": "pcs", "quantity": "4", "unit_price": "250.005"},
            )

        self.assertEqual(
            excinfo.exception.errors,
            {"item.unit_price": "Unit price cannot have more than 2 decimal places."},
        )
        self.assertEqual(rack.unit_price, Decimal("250.00"))

    def test_update_item_recomputes(self):
        rack = self.cost_estimate.items[0]

        update_cost_estimate_item(
            self.bsp,
            self.cost_estimate.id,
            rack.id,
            {"description": "Rack (heavy)", "unit": "pcs", "quantity": "4", "unit_price": "300"},
        )

        self.assertEqual(rack.total_price, Decimal("1200.00"))
        self.assertEqual(self.cost_estimate.total_amount, Decimal("1225.00"))
        self.assertEqual(self.cost_estimate.total_amount, self._item_sum())

    def test_remove_item_recomputes(self):
        bolts = self.cost_estimate.items[1]

        remove_cost_estimate_item(self.bsp, self.cost_estimate.id, bolts.id)

        self.assertEqual(len(self.cost_estimate.items), 1)
        self.assertEqual(self.cost_estimate.total_amount, Decimal("1000.00"))
        self.assertEqual(CostEstimateItem.query.count(), 1)

    def test_last_item_cannot_be_removed(self):
        remove_cost_estimate_item(self.bsp, self.cost_estimate.id, self.cost_estimate.items[1].id)
        last = self.cost_estimate.items[0]

        with self.assertRaises(ValidationError) as excinfo:
            remove_cost_estimate_item(self.bsp, self.cost_estimate.id, last.id)

        self.assertIn("items", excinfo.exception.errors)
        self.assertEqual(CostEstimateItem.query.count(), 1)

    def test_item_of_another_estimate_is_not_found(self):
        with self.assertRaises(NotFoundError) as excinfo:
            remove_cost_estimate_item(self.bsp, self.cost_estimate.id, 999)

        self.assertEqual(excinfo.exception.entity, "cost_estimate_item")

    def test_item_changes_require_draft(self):
        approve_cost_estimate(self.dau, self.cost_estimate.id)

        with self.assertRaises(GuardFailedError):
            add_cost_estimate_item(
                self.bsp,
                self.cost_estimate.id,
                {"description": "Late", "unit": "pcs", "quantity": 1, "unit_price": 1},
            )

    def test_item_changes_require_capability(self):
        with self.assertRaises(CapabilityError):
            remove_cost_estimate_item(self.dau, self.cost_estimate.id, self.cost_estimate.items[0].id)


if __name__ == "__main__":
    unittest.main()
