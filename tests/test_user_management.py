import unittest

from app import create_app
from config import Config
from extensions import db
from models import PURCHASE_ORDER_STATUS_IN_PROGRESS, User
from workflow import (
    CapabilityError,
    HasDependentsError,
    NotFoundError,
    SelfDeleteError,
    ValidationError,
    approve_cost_estimate,
    complete_purchase_order,
    create_cost_estimate,
    create_purchase_order,
    create_user,
    delete_user,
    record_login,
    update_user,
    validate_purchase_order,
)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret"


class UserManagementTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.drop_all()
        db.create_all()

        self.superadmin = self._create_user("root@example.com", "superadmin")
        self.admin = self._create_user("admin@example.com", "admin")

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _create_user(self, email: str, role: str) -> User:
        user = User(name=email.split("@")[0].title(), email=email, role=role)
        user.set_password("password123")
        db.session.add(user)
        db.session.commit()
        return user

    def test_create_user_normalises_and_hashes(self):
        user = create_user(
            self.superadmin,
            {
                "name": " Siti ",
                "email": "Siti@Example.COM",
                "password": "s3cret-pass",
                "role": "dau",
                "is_active": "on",
            },
        )

        self.assertEqual(user.name, "Siti")
        self.assertEqual(user.email, "siti@example.com")
        self.assertEqual(user.role, "dau")
        self.assertTrue(user.is_active)
        self.assertNotEqual(user.password_hash, "s3cret-pass")
        self.assertTrue(user.check_password("s3cret-pass"))

    def test_create_user_defaults_role_and_active_flag(self):
        user = create_user(
            self.superadmin,
            {"name": "Budi", "email": "budi@example.com", "password": "password123"},
        )

        self.assertEqual(user.role, "unit_kerja")
        self.assertTrue(user.is_active)

    def test_create_user_requires_manage_users(self):
        with self.assertRaises(CapabilityError):
            create_user(
                self.admin,
                {"name": "Budi", "email": "budi@example.com", "password": "password123"},
            )

        self.assertEqual(User.query.count(), 2)

    def test_create_user_validation(self):
        with self.assertRaises(ValidationError) as excinfo:
            create_user(
                self.superadmin,
                {
                    "name": "",
                    "email": "ADMIN@example.com",
                    "password": "short",
                    "role": "chairman",
                    "is_active": "maybe",
                },
            )

        self.assertEqual(
            set(excinfo.exception.errors), {"name", "email", "password", "role", "is_active"}
        )

    def test_create_user_requires_password_and_valid_email(self):
        with self.assertRaises(ValidationError) as excinfo:
            create_user(self.superadmin, {"name": "No Pass", "email": "not-an-email"})

        self.assertEqual(set(excinfo.exception.errors), {"email", "password"})

    def test_update_user_keeps_password_when_blank(self):
        updated = update_user(
            self.superadmin,
            self.admin.id,
            {"name": "Admin Two", "email": "admin@example.com", "password": "", "role": "bsp"},
        )

        self.assertEqual(updated.name, "Admin Two")
        self.assertEqual(updated.role, "bsp")
        self.assertTrue(updated.check_password("password123"))

    def test_update_user_can_change_password_and_deactivate(self):
        update_user(
            self.superadmin,
            self.admin.id,
            {
                "name": "Admin",
                "email": "admin@example.com",
                "password": "another-pass",
                "is_active": "false",
            },
        )

        self.assertTrue(self.admin.check_password("another-pass"))
        self.assertFalse(self.admin.is_active)
        self.assertEqual(self.admin.role, "admin")

    def test_update_user_rejects_email_of_another_account(self):
        with self.assertRaises(ValidationError) as excinfo:
            update_user(
                self.superadmin,
                self.admin.id,
                {"name": "Admin", "email": "root@example.com"},
            )

        self.assertIn("email", excinfo.exception.errors)

    def test_update_missing_user(self):
        with self.assertRaises(NotFoundError):
            update_user(self.superadmin, 999, {"name": "Ghost", "email": "ghost@example.com"})

    def test_delete_unreferenced_user(self):
        spare = self._create_user("spare@example.com", "kkf")

        delete_user(self.superadmin, spare.id)

        self.assertIsNone(db.session.get(User, spare.id))

    def test_self_delete_is_checked_before_dependents(self):
        create_purchase_order(self.superadmin, {"title": "Makes root referenced"})

        with self.assertRaises(SelfDeleteError):
            delete_user(self.superadmin, self.superadmin.id)

    def test_delete_user_with_dependents_is_refused(self):
        bsp = self._create_user("bsp@example.com", "bsp")
        purchase_order = create_purchase_order(self.admin, {"title": "Pumps"})
        validate_purchase_order(bsp, purchase_order.id)
        create_cost_estimate(
            bsp,
            purchase_order.id,
            {"title": "Pumps CE", "type": "cost_estimate"},
            [{"description": "Pump", "unit": "pcs", "quantity": 1, "unit_price": 900}],
        )

        with self.assertRaises(HasDependentsError) as excinfo:
            delete_user(self.superadmin, bsp.id)

        self.assertEqual(
            excinfo.exception.references,
            {"purchase_orders_validated": 1, "cost_estimates_created": 1},
        )
        self.assertIsNotNone(db.session.get(User, bsp.id))

    def test_delete_user_who_completed_a_purchase_order_is_refused(self):
        closer = self._create_user("closer@example.com", "admin")
        purchase_order = create_purchase_order(self.admin, {"title": "Generators"})
        purchase_order.status = PURCHASE_ORDER_STATUS_IN_PROGRESS
        db.session.commit()
        complete_purchase_order(closer, purchase_order.id)

        with self.assertRaises(HasDependentsError) as excinfo:
            delete_user(self.superadmin, closer.id)

        self.assertEqual(excinfo.exception.references, {"purchase_orders_completed": 1})
        self.assertEqual(
            excinfo.exception.to_dict()["references"], {"purchase_orders_completed": 1}
        )
        self.assertIsNotNone(db.session.get(User, closer.id))

    def test_delete_user_who_approved_a_cost_estimate_is_refused(self):
        dau = self._create_user("dau@example.com", "dau")
        purchase_order = create_purchase_order(self.admin, {"title": "Valves"})
        validate_purchase_order(self.admin, purchase_order.id)
        cost_estimate = create_cost_estimate(
            self.admin,
            purchase_order.id,
            {"title": "Valves CE", "type": "cost_estimate"},
            [{"description": "Valve", "unit": "pcs", "quantity": 2, "unit_price": 75}],
        )
        approve_cost_estimate(dau, cost_estimate.id)

        with self.assertRaises(HasDependentsError) as excinfo:
            delete_user(self.superadmin, dau.id)

        self.assertEqual(excinfo.exception.references, {"cost_estimates_approved": 1})
        self.assertIsNotNone(db.session.get(User, dau.id))

    def test_delete_requires_manage_users(self):
        spare = self._create_user("spare@example.com", "kkf")

        with self.assertRaises(CapabilityError):
            delete_user(self.admin, spare.id)

    def test_record_login_sets_timestamp(self):
        self.assertIsNone(self.admin.last_login_at)

        record_login(self.admin)

        self.assertIsNotNone(self.admin.last_login_at)


if __name__ == "__main__":
    unittest.main()
