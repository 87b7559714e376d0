# Overview: Threaded concurrency tests for numbering and tenant provisioning.

"""
Concurrency tests against a file-backed SQLite database, so that every
thread gets its own connection and really races the others.
"""
import os
import tempfile
import threading
import unittest
from datetime import datetime

from invoicer import create_app
from invoicer.clients import Principal
from invoicer.extensions import db
from invoicer.models import Customer, Document, Membership, Tenant
from invoicer.services import document_service, tenant_service


MARCH_15 = datetime(2025, 3, 15, 10, 0, 0)


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            tenant, _ = tenant_service.resolve_tenant(
                Principal(id="eeeeeeee-5555-4555-8555-555555555555", metadata={"company_name": "Race AG"})
            )
            self.tenant_id = tenant.id

            customer = Customer(tenant_id=self.tenant_id, company_name="Kunde", email="k@kunde.test")
            db.session.add(customer)
            db.session.commit()
            self.customer_id = customer.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        threads = [threading.Thread(target=target) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_document_number_concurrency(self):
        created = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    document = document_service.create_document(
                        self.tenant_id,
                        "invoice",
                        {"customer_id": self.customer_id, "items": [{"description": "x", "unit_price_cents": 100}]},
                        now=MARCH_15,
                    )
                    with lock:
                        created.append(document.number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, 10)

        self.assertFalse(errors)
        self.assertEqual(len(created), 10)
        self.assertEqual(len(created), len(set(created)))

        with self.app.app_context():
            stored = [n for (n,) in db.session.query(Document.number).filter_by(tenant_id=self.tenant_id)]
        self.assertEqual(sorted(stored), sorted(created))

    def test_concurrent_first_login_converges(self):
        principal = Principal(id="ffffffff-6666-4666-8666-666666666666", email="new@owner.test")
        tenant_ids = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    tenant, _ = tenant_service.resolve_tenant(principal)
                    with lock:
                        tenant_ids.append(tenant.id)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, 5)

        self.assertFalse(errors)
        self.assertEqual(len(set(tenant_ids)), 1)

        with self.app.app_context():
            self.assertEqual(db.session.query(Membership).filter_by(user_id=principal.id).count(), 1)
            # Tenant from setUp plus the one provisioned here
            self.assertEqual(db.session.query(Tenant).count(), 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
