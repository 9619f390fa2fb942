import unittest
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from app.api.deps import get_current_user
from app.core.config import Settings
from app.core.exceptions import Unavailable
from app.main import app
from app.services import build_services

DOCTOR = {"uid": "D1", "role": "doctor"}
PATIENT = {"uid": "P1", "role": "patient"}


class RouteTestCase(unittest.TestCase):
    def setUp(self):
        self.services = build_services(Settings(STORE_BACKEND="memory"))
        self.services.directory.add_user("P1", "p@x.com", displayName="Pat", ticCounter=4)
        self.services.tic_history.history["P1"] = [
            {"date": "2025-03-01", "timeOfDay": "10:00", "intensity": 2, "location": "Neck"},
            {"date": "2025-03-02", "timeOfDay": "11:00", "intensity": 4, "location": "Eyes"},
        ]
        app.state.services = self.services
        self.client = TestClient(app)
        self.as_user(PATIENT)

    def tearDown(self):
        app.dependency_overrides.clear()

    def as_user(self, user):
        app.dependency_overrides[get_current_user] = lambda: user

    def generate(self, **body):
        payload = {"doctorId": "D1", "patientEmail": "p@x.com"}
        payload.update(body)
        return self.client.post("/generateConfirmation", json=payload)

    def redeem(self, doctor_id="D1", patient_id="P1"):
        return self.client.get(
            "/confirmPatientRequest",
            params={"doctorId": doctor_id, "patientId": patient_id},
            follow_redirects=False,
        )

    def token_from(self, response):
        location = response.headers["location"]
        return parse_qs(urlparse(location).query)["token"][0]

    def link_patient(self):
        self.generate()
        token = self.token_from(self.redeem())
        self.as_user(PATIENT)
        self.client.post("/confirmations/confirm", json={"token": token})


class TestConfirmationRoutes(RouteTestCase):
    def test_generate_returns_link_and_template(self):
        response = self.generate()

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertIn("doctorId=D1&patientId=P1", body["confirmationLink"])
        self.assertIn(body["confirmationLink"], body["emailTemplate"]["body"])
        self.assertEqual(len(self.services.store.requests), 1)

    def test_generate_missing_field(self):
        response = self.client.post("/generateConfirmation", json={"doctorId": "D1"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_generate_without_body(self):
        response = self.client.post("/generateConfirmation")
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())
        self.assertEqual(self.services.store.requests, {})

    def test_generate_with_non_string_doctor_id(self):
        response = self.generate(doctorId=5)
        self.assertEqual(response.status_code, 400)
        self.assertIn("doctorId", response.json()["error"])

    def test_generate_unknown_patient(self):
        response = self.generate(patientEmail="ghost@x.com")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Patient not found."})

    def test_store_outage_is_500(self):
        self.services.workflow.directory = MagicMock()
        self.services.workflow.directory.find_by_email.side_effect = Unavailable()

        response = self.generate()
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Service temporarily unavailable."})

    def test_redeem_redirects_with_token(self):
        self.generate()
        response = self.redeem()

        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["location"].startswith("http://localhost:3000/userlogin?token="))
        self.assertTrue(self.token_from(response))

    def test_redeem_twice_is_400(self):
        self.generate()
        self.redeem()
        response = self.redeem()
        self.assertEqual(response.status_code, 400)

    def test_redeem_missing_params_is_400(self):
        response = self.client.get("/confirmPatientRequest", params={"doctorId": "D1"})
        self.assertEqual(response.status_code, 400)

    def test_confirm_creates_link_once(self):
        self.generate()
        token = self.token_from(self.redeem())

        response = self.client.post("/confirmations/confirm", json={"token": token})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual((body["doctorId"], body["patientId"]), ("D1", "P1"))
        self.assertIsNotNone(self.services.store.get_link("D1", "P1"))

        again = self.client.post("/confirmations/confirm", json={"token": token})
        self.assertEqual(again.status_code, 400)

    def test_confirm_by_wrong_patient(self):
        self.generate()
        token = self.token_from(self.redeem())
        self.as_user({"uid": "P9", "role": "patient"})

        response = self.client.post("/confirmations/confirm", json={"token": token})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid or expired token."})

    def test_confirm_requires_auth(self):
        app.dependency_overrides.clear()
        response = self.client.post("/confirmations/confirm", json={"token": "x"})
        self.assertIn(response.status_code, (401, 403))


class TestDoctorPatientRoutes(RouteTestCase):
    def test_lists_linked_patients(self):
        self.link_patient()
        self.as_user(DOCTOR)

        response = self.client.get("/doctor/patients/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["items"],
            [{"id": "P1", "display_name": "Pat", "tic_counter": 4}],
        )

    def test_patient_role_is_forbidden(self):
        response = self.client.get("/doctor/patients/")
        self.assertEqual(response.status_code, 403)

    def test_tics_require_confirmed_link(self):
        self.as_user(DOCTOR)
        response = self.client.get("/doctor/patients/P1/tics")
        self.assertEqual(response.status_code, 403)

    def test_tics_filtered_by_location(self):
        self.link_patient()
        self.as_user(DOCTOR)

        response = self.client.get("/doctor/patients/P1/tics", params={"location": "Eyes"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([t["location"] for t in body["items"]], ["Eyes"])
        self.assertEqual(body["locations"], ["Neck", "Eyes"])

    def test_tic_chart(self):
        self.link_patient()
        self.as_user(DOCTOR)

        response = self.client.get("/doctor/patients/P1/tics/chart", params={"mode": "total", "sort": "asc"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["header"], ["Time", "Neck", "Eyes"])
        self.assertEqual([r["time_key"] for r in body["rows"]], ["2025-03-01", "2025-03-02"])


if __name__ == "__main__":
    unittest.main()
