import unittest
from decimal import Decimal

from app import create_app
from config import Config
from extensions import db
from models import PURCHASE_ORDER_STATUS_CE_BOQ_CREATED, User, utcnow
from workflow import (
    CapabilityError,
    approve_cost_estimate,
    create_cost_estimate,
    create_purchase_order,
    validate_purchase_order,
)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret"


class ProcurementScenarioTestCase(unittest.TestCase):
    """Unit kerja raises a PO, BSP validates and estimates it, DAU approves."""

    def setUp(self):
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.drop_all()
        db.create_all()

        self.unit = self._create_user("unit_kerja")
        self.bsp = self._create_user("bsp")
        self.dau = self._create_user("dau")

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

    def test_purchase_order_to_approved_estimate(self):
        year = utcnow().year
        items = [
            {"description": "Cable", "unit": "m", "quantity": "10", "unit_price": "100"},
            {"description": "Socket", "unit": "pcs", "quantity": "5", "unit_price": "50"},
        ]

        purchase_order = create_purchase_order(self.unit, {"title": "Rewire meeting room"})
        self.assertEqual(purchase_order.po_number, f"PO-{year}-0001")

        validate_purchase_order(self.bsp, purchase_order.id)

        with self.assertRaises(CapabilityError):
            create_cost_estimate(
                self.dau, purchase_order.id, {"title": "CE", "type": "cost_estimate"}, items
            )

        cost_estimate = create_cost_estimate(
            self.bsp, purchase_order.id, {"title": "CE", "type": "cost_estimate"}, items
        )
        self.assertEqual(cost_estimate.ce_number, f"CE-{year}-0001")
        self.assertEqual(cost_estimate.total_amount, Decimal("1250.00"))
        self.assertEqual(purchase_order.status, PURCHASE_ORDER_STATUS_CE_BOQ_CREATED)

        second = create_purchase_order(self.unit, {"title": "Second request"})
        self.assertEqual(second.po_number, f"PO-{year}-0002")

        with self.assertRaises(CapabilityError):
            approve_cost_estimate(self.bsp, cost_estimate.id)

        approved = approve_cost_estimate(self.dau, cost_estimate.id)
        self.assertEqual(approved.approved_by_id, self.dau.id)
        self.assertEqual(purchase_order.status, PURCHASE_ORDER_STATUS_CE_BOQ_CREATED)


if __name__ == "__main__":
    unittest.main()
