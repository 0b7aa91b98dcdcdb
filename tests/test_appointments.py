from datetime import date, timedelta

import pytest

from app.core.security import UserRole
from app.models.appointment import Appointment, AppointmentStatus

def book(client, headers_for, patient, doctor, day, start="09:00", end="09:30"):
    return client.post(
        "/api/v1/appointments",
        json={"doctorId": doctor.id, "date": day, "startTime": start, "endTime": end},
        headers=headers_for(patient.user)
    )

def change_status(client, headers_for, user, appointment_id, status):
    return client.patch(
        f"/api/v1/appointments/{appointment_id}/status",
        json={"status": status},
        headers=headers_for(user)
    )

def cancel(client, headers_for, user, appointment_id):
    return client.patch(
        f"/api/v1/appointments/{appointment_id}/cancel",
        headers=headers_for(user)
    )

class TestBookAppointment:

    def test_booking_starts_pending(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()

        response = book(client, headers_for, patient, doctor, tomorrow)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "pending"
        assert data["slot"] == {"date": tomorrow, "startTime": "09:00", "endTime": "09:30"}
        assert data["doctorId"] == doctor.id
        assert data["patientId"] == patient.id
        assert data["doctor"]["specialization"] == "Cardiology"

    def test_same_slot_conflicts(self, client, factory, headers_for, tomorrow, db_session):
        doctor = factory.doctor()
        first, second = factory.patient(), factory.patient()

        book(client, headers_for, first, doctor, tomorrow)
        response = book(client, headers_for, second, doctor, tomorrow, end="10:00")

        assert response.status_code == 409
        assert response.json()["message"] == (
            "The selected slot is already booked or pending confirmation."
        )
        assert db_session.query(Appointment).count() == 1

    def test_confirmed_slot_still_conflicts(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        first, second = factory.patient(), factory.patient()

        appointment_id = book(client, headers_for, first, doctor, tomorrow).json()["data"]["id"]
        change_status(client, headers_for, doctor.user, appointment_id, "confirmed")

        response = book(client, headers_for, second, doctor, tomorrow)
        assert response.status_code == 409

    def test_cancelled_slot_can_be_rebooked(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        first, second = factory.patient(), factory.patient()

        appointment_id = book(client, headers_for, first, doctor, tomorrow).json()["data"]["id"]
        cancel(client, headers_for, first.user, appointment_id)

        response = book(client, headers_for, second, doctor, tomorrow)
        assert response.status_code == 201

    def test_other_doctor_same_time_is_fine(self, client, factory, headers_for, tomorrow):
        doctor, other_doctor = factory.doctor(), factory.doctor()
        patient = factory.patient()

        assert book(client, headers_for, patient, doctor, tomorrow).status_code == 201
        assert book(client, headers_for, patient, other_doctor, tomorrow).status_code == 201

    def test_missing_fields(self, client, factory, headers_for):
        doctor = factory.doctor()
        patient = factory.patient()

        response = client.post(
            "/api/v1/appointments",
            json={"doctorId": doctor.id, "startTime": "09:00"},
            headers=headers_for(patient.user)
        )
        assert response.status_code == 400
        assert response.json()["message"] == (
            "Doctor ID, date, start time, and end time are required."
        )

    def test_end_must_follow_start(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()

        response = book(client, headers_for, patient, doctor, tomorrow, start="10:00", end="09:30")
        assert response.status_code == 400

    def test_badly_formatted_time(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()

        response = book(client, headers_for, patient, doctor, tomorrow, start="9am")
        assert response.status_code == 400

    def test_unknown_doctor(self, client, factory, headers_for, tomorrow):
        patient = factory.patient()

        response = client.post(
            "/api/v1/appointments",
            json={"doctorId": 9999, "date": tomorrow, "startTime": "09:00", "endTime": "09:30"},
            headers=headers_for(patient.user)
        )
        assert response.status_code == 404

    def test_doctor_cannot_book(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()

        response = client.post(
            "/api/v1/appointments",
            json={"doctorId": doctor.id, "date": tomorrow, "startTime": "09:00", "endTime": "09:30"},
            headers=headers_for(doctor.user)
        )
        assert response.status_code == 403

class TestAppointmentStatus:

    def test_confirm_then_complete(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        confirmed = change_status(client, headers_for, doctor.user, appointment_id, "confirmed")
        assert confirmed.status_code == 200
        assert confirmed.json()["data"]["status"] == "confirmed"

        completed = change_status(client, headers_for, doctor.user, appointment_id, "completed")
        assert completed.status_code == 200
        assert completed.json()["data"]["status"] == "completed"

    def test_cannot_complete_pending(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        response = change_status(client, headers_for, doctor.user, appointment_id, "completed")

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot complete an appointment that is not confirmed."

    def test_cannot_confirm_twice(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        change_status(client, headers_for, doctor.user, appointment_id, "confirmed")
        response = change_status(client, headers_for, doctor.user, appointment_id, "confirmed")

        assert response.status_code == 400
        assert response.json()["message"] == "Can only confirm a pending appointment."

    def test_status_endpoint_can_cancel_completed(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]
        change_status(client, headers_for, doctor.user, appointment_id, "confirmed")
        change_status(client, headers_for, doctor.user, appointment_id, "completed")

        response = change_status(client, headers_for, doctor.user, appointment_id, "cancelled")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"

    def test_other_doctor_is_forbidden(self, client, factory, headers_for, tomorrow, db_session):
        doctor, other_doctor = factory.doctor(), factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        response = change_status(client, headers_for, other_doctor.user, appointment_id, "confirmed")

        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(Appointment, appointment_id).status == AppointmentStatus.PENDING

    def test_admin_can_change_status(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        admin = factory.admin()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        response = change_status(client, headers_for, admin, appointment_id, "confirmed")
        assert response.status_code == 200

    def test_patient_cannot_change_status(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        response = change_status(client, headers_for, patient.user, appointment_id, "confirmed")
        assert response.status_code == 403

    @pytest.mark.parametrize("status", [None, "pending", "rescheduled"])
    def test_invalid_status(self, client, factory, headers_for, tomorrow, status):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        response = change_status(client, headers_for, doctor.user, appointment_id, status)
        assert response.status_code == 400

    def test_malformed_id(self, client, factory, headers_for):
        doctor = factory.doctor()

        response = change_status(client, headers_for, doctor.user, "xyz", "confirmed")
        assert response.status_code == 400

    def test_unknown_appointment(self, client, factory, headers_for):
        doctor = factory.doctor()

        response = change_status(client, headers_for, doctor.user, 9999, "confirmed")
        assert response.status_code == 404

class TestCancelAppointment:

    def test_patient_cancels_own(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        response = cancel(client, headers_for, patient.user, appointment_id)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"

    def test_doctor_cancels_confirmed(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]
        change_status(client, headers_for, doctor.user, appointment_id, "confirmed")

        response = cancel(client, headers_for, doctor.user, appointment_id)
        assert response.status_code == 200

    def test_admin_cancels_any(self, client, factory, headers_for, tomorrow, db_session):
        doctor = factory.doctor()
        patient = factory.patient()
        admin = factory.admin()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        response = cancel(client, headers_for, admin, appointment_id)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        db_session.expire_all()
        assert db_session.get(Appointment, appointment_id).status == AppointmentStatus.CANCELLED

    def test_other_patient_is_forbidden(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient, stranger = factory.patient(), factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        response = cancel(client, headers_for, stranger.user, appointment_id)

        assert response.status_code == 403
        assert response.json()["message"] == "Unauthorized to cancel this appointment."

    def test_cannot_cancel_twice(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]

        cancel(client, headers_for, patient.user, appointment_id)
        response = cancel(client, headers_for, patient.user, appointment_id)

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot cancel an appointment that is already cancelled."

    def test_cannot_cancel_completed(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        appointment_id = book(client, headers_for, patient, doctor, tomorrow).json()["data"]["id"]
        change_status(client, headers_for, doctor.user, appointment_id, "confirmed")
        change_status(client, headers_for, doctor.user, appointment_id, "completed")

        response = cancel(client, headers_for, patient.user, appointment_id)
        assert response.status_code == 400

class TestListAppointments:

    def test_patient_sees_only_own(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient, other = factory.patient(), factory.patient()
        book(client, headers_for, patient, doctor, tomorrow, start="09:00", end="09:30")
        book(client, headers_for, other, doctor, tomorrow, start="10:00", end="10:30")

        response = client.get("/api/v1/appointments", headers=headers_for(patient.user))

        assert response.status_code == 200
        page = response.json()["data"]
        assert page["totalDocs"] == 1
        assert page["docs"][0]["patientId"] == patient.id

    def test_doctor_sees_own_bookings(self, client, factory, headers_for, tomorrow):
        doctor, other_doctor = factory.doctor(), factory.doctor()
        patient = factory.patient()
        book(client, headers_for, patient, doctor, tomorrow)
        book(client, headers_for, patient, other_doctor, tomorrow)

        response = client.get("/api/v1/appointments", headers=headers_for(doctor.user))

        page = response.json()["data"]
        assert page["totalDocs"] == 1
        assert page["docs"][0]["doctorId"] == doctor.id

    def test_admin_sees_everything(self, client, factory, headers_for, tomorrow):
        doctor, other_doctor = factory.doctor(), factory.doctor()
        patient = factory.patient()
        admin = factory.admin()
        book(client, headers_for, patient, doctor, tomorrow)
        book(client, headers_for, patient, other_doctor, tomorrow)

        response = client.get("/api/v1/appointments", headers=headers_for(admin))
        assert response.json()["data"]["totalDocs"] == 2

    def test_most_recent_slot_first(self, client, factory, headers_for):
        doctor = factory.doctor()
        patient = factory.patient()
        day_one = (date.today() + timedelta(days=1)).isoformat()
        day_two = (date.today() + timedelta(days=2)).isoformat()
        book(client, headers_for, patient, doctor, day_one, start="09:00", end="09:30")
        book(client, headers_for, patient, doctor, day_two, start="08:00", end="08:30")
        book(client, headers_for, patient, doctor, day_one, start="11:00", end="11:30")

        response = client.get("/api/v1/appointments", headers=headers_for(patient.user))

        slots = [(doc["slot"]["date"], doc["slot"]["startTime"]) for doc in response.json()["data"]["docs"]]
        assert slots == [(day_two, "08:00"), (day_one, "11:00"), (day_one, "09:00")]

    def test_pagination(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        for hour in range(10, 15):
            book(client, headers_for, patient, doctor, tomorrow, start=f"{hour}:00", end=f"{hour}:30")

        response = client.get(
            "/api/v1/appointments",
            params={"page": 2, "limit": 2},
            headers=headers_for(patient.user)
        )

        page = response.json()["data"]
        assert page["totalDocs"] == 5
        assert page["totalPages"] == 3
        assert page["page"] == 2
        assert page["hasPrevPage"] is True
        assert page["hasNextPage"] is True
        assert page["prevPage"] == 1
        assert page["nextPage"] == 3
        assert [doc["slot"]["startTime"] for doc in page["docs"]] == ["12:00", "11:00"]

    def test_status_filter(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        first_id = book(client, headers_for, patient, doctor, tomorrow, start="09:00", end="09:30").json()["data"]["id"]
        book(client, headers_for, patient, doctor, tomorrow, start="10:00", end="10:30")
        cancel(client, headers_for, patient.user, first_id)

        response = client.get(
            "/api/v1/appointments",
            params={"status": "cancelled"},
            headers=headers_for(patient.user)
        )

        docs = response.json()["data"]["docs"]
        assert [doc["id"] for doc in docs] == [first_id]

    def test_unknown_status_filter_matches_nothing(self, client, factory, headers_for, tomorrow):
        doctor = factory.doctor()
        patient = factory.patient()
        book(client, headers_for, patient, doctor, tomorrow)

        response = client.get(
            "/api/v1/appointments",
            params={"status": "archived"},
            headers=headers_for(patient.user)
        )

        assert response.status_code == 200
        assert response.json()["data"]["totalDocs"] == 0
        assert response.json()["data"]["docs"] == []

    def test_invalid_page(self, client, factory, headers_for):
        patient = factory.patient()

        response = client.get(
            "/api/v1/appointments",
            params={"page": 0},
            headers=headers_for(patient.user)
        )
        assert response.status_code == 400

    def test_doctor_without_profile_gets_empty_page(self, client, factory, headers_for):
        user = factory.user(UserRole.DOCTOR)

        response = client.get("/api/v1/appointments", headers=headers_for(user))

        assert response.status_code == 200
        assert response.json()["data"]["docs"] == []
        assert response.json()["message"] == "No doctor profile found."
