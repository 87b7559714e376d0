import unittest

from invoicer import create_app
from invoicer.errors import ValidationError
from invoicer.extensions import db
from invoicer.models import Membership, Tenant, TenantSettings
from invoicer.services import settings_service


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "TESTING": True,
            "DEFAULT_TAX_RATE_BPS": 770,
            "DEFAULT_CURRENCY": "EUR",
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(TenantSettings).delete()
        db.session.query(Membership).delete()
        db.session.query(Tenant).delete()
        db.session.commit()

        self.tenant = Tenant(name="Test Co", slug="test-co-12345678")
        db.session.add(self.tenant)
        db.session.commit()

    def test_defaults_come_from_config_without_row(self):
        settings = settings_service.get_settings(self.tenant.id)

        self.assertIsNone(settings.id)
        self.assertEqual(settings.default_tax_rate_bps, 770)
        self.assertEqual(settings.currency, "EUR")
        self.assertEqual(settings.number_format_for("invoice"), "F-{YYYY}-{MM}-{###}")
        self.assertEqual(settings.number_format_for("offer"), "ANG-{YYYY}-{MM}-{###}")
        self.assertEqual(db.session.query(TenantSettings).count(), 0)

    def test_update_creates_row_when_missing(self):
        settings_service.update_settings(self.tenant.id, {"default_due_days": 14})

        stored = db.session.query(TenantSettings).filter_by(tenant_id=self.tenant.id).one()
        self.assertEqual(stored.default_due_days, 14)
        self.assertEqual(stored.term_days_for("invoice"), 14)
        self.assertEqual(stored.term_days_for("offer"), 30)

    def test_update_normalizes_values(self):
        settings = settings_service.update_settings(
            self.tenant.id,
            {
                "currency": " chf ",
                "company_name": "  Test Co AG ",
                "email": "",
                "invoice_number_format": "RE-{YYYY}-{####}",
            },
        )

        self.assertEqual(settings.currency, "CHF")
        self.assertEqual(settings.company_name, "Test Co AG")
        self.assertIsNone(settings.email)
        self.assertEqual(settings.invoice_number_format, "RE-{YYYY}-{####}")

    def test_invalid_number_format_rejected(self):
        with self.assertRaises(ValidationError):
            settings_service.update_settings(self.tenant.id, {"offer_number_format": "ANG-{YYYY}"})

    def test_out_of_range_values_rejected(self):
        for updates in (
            {"default_tax_rate_bps": -1},
            {"default_tax_rate_bps": 10001},
            {"default_tax_rate_bps": "810"},
            {"default_due_days": True},
            {"offer_validity_days": 4000},
            {"currency": "SFR1"},
        ):
            with self.subTest(updates=updates):
                with self.assertRaises(ValidationError):
                    settings_service.update_settings(self.tenant.id, updates)

    def test_unknown_setting_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            settings_service.update_settings(self.tenant.id, {"tenant_id": "someone-else"})
        self.assertIn("tenant_id", ctx.exception.message)

    def test_failed_update_leaves_stored_row_untouched(self):
        settings_service.update_settings(self.tenant.id, {"default_due_days": 10})

        with self.assertRaises(ValidationError):
            settings_service.update_settings(self.tenant.id, {"default_due_days": 20, "currency": "X"})

        stored = db.session.query(TenantSettings).filter_by(tenant_id=self.tenant.id).one()
        self.assertEqual(stored.default_due_days, 10)


if __name__ == "__main__":
    unittest.main()
