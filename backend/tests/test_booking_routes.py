# Overview: Pytest coverage for the public booking API and health endpoint.

from marketplace.models import Booking
from conftest import salon_payload, customer_headers


class TestCustomerIdentity:

    def test_missing_identity_rejected(self, client, db_session):
        response = client.post('/api/public/bookings', json={})
        assert response.status_code == 401
        assert response.json['error'] == 'Authentication required'

    def test_non_numeric_identity_rejected(self, client, db_session):
        response = client.post('/api/public/bookings', json={}, headers={'X-Customer-Id': 'abc'})
        assert response.status_code == 401


class TestCreateBookingRoute:

    def test_create_booking(self, client, db_session, provider, salon, staff_a, customer, cut):
        response = client.post(
            '/api/public/bookings',
            json=salon_payload(provider, salon, [{"offering_id": cut.id, "staff_id": staff_a.id}], tip_amount=20),
            headers=customer_headers(customer),
        )

        assert response.status_code == 201
        booking = response.json['booking']
        assert booking['booking_number'] == f"BK-{provider.id}-000001"
        assert booking['status'] == 'confirmed'
        assert booking['scheduled_at'] == '2030-03-04T09:00:00Z'
        assert booking['scheduled_end_at'] == '2030-03-04T10:00:00Z'
        assert booking['price_breakdown']['total_amount'] == '250.00'
        assert booking['price_breakdown']['tax_rate'] == '15'
        assert db_session.query(Booking).count() == 1

    def test_validation_error_shape(self, client, db_session, customer):
        response = client.post(
            '/api/public/bookings',
            json={"provider_id": 1, "services": []},
            headers=customer_headers(customer),
        )

        assert response.status_code == 400
        error = response.json['error']
        assert error['code'] == 'VALIDATION_ERROR'
        assert error['details'] == {"field": "services"}

    def test_non_json_body(self, client, db_session, customer):
        response = client.post(
            '/api/public/bookings',
            data='not json',
            headers=customer_headers(customer),
        )
        assert response.status_code == 400

    def test_conflict_returns_409(self, client, db_session, provider, salon, staff_a, customer, other_customer, cut):
        payload = salon_payload(provider, salon, [{"offering_id": cut.id, "staff_id": staff_a.id}])
        first = client.post('/api/public/bookings', json=payload, headers=customer_headers(customer))
        second = client.post('/api/public/bookings', json=payload, headers=customer_headers(other_customer))

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json['error']['code'] == 'CONFLICT'
        assert second.json['error']['details']['conflicting_booking_ids'] == [first.json['booking']['booking_id']]

    def test_unknown_customer_is_404(self, client, db_session, provider, salon, cut):
        response = client.post(
            '/api/public/bookings',
            json=salon_payload(provider, salon, [{"offering_id": cut.id}]),
            headers={'X-Customer-Id': '99999'},
        )
        assert response.status_code == 404
        assert response.json['error']['code'] == 'NOT_FOUND'


class TestQuoteRoute:

    def test_quote(self, client, db_session, provider, salon, customer, cut, color):
        response = client.post(
            '/api/public/bookings/quote',
            json=salon_payload(provider, salon, [{"offering_id": cut.id}, {"offering_id": color.id}]),
            headers=customer_headers(customer),
        )

        assert response.status_code == 200
        breakdown = response.json['price_breakdown']
        assert breakdown['services_subtotal'] == '700.00'
        assert breakdown['tax_amount'] == '105.00'
        assert breakdown['total_amount'] == '805.00'
        assert db_session.query(Booking).count() == 0


class TestGetBookingRoute:

    def test_owner_can_read(self, client, db_session, provider, salon, customer, cut):
        created = client.post(
            '/api/public/bookings',
            json=salon_payload(provider, salon, [{"offering_id": cut.id}]),
            headers=customer_headers(customer),
        )
        booking_id = created.json['booking']['booking_id']

        response = client.get(f'/api/public/bookings/{booking_id}', headers=customer_headers(customer))

        assert response.status_code == 200
        assert response.json['booking']['id'] == booking_id
        assert response.json['booking']['total_amount'] == '230.00'
        assert [line['offering_id'] for line in response.json['services']] == [cut.id]

    def test_other_customer_gets_404(self, client, db_session, provider, salon, customer, other_customer, cut):
        created = client.post(
            '/api/public/bookings',
            json=salon_payload(provider, salon, [{"offering_id": cut.id}]),
            headers=customer_headers(customer),
        )
        booking_id = created.json['booking']['booking_id']

        response = client.get(f'/api/public/bookings/{booking_id}', headers=customer_headers(other_customer))
        assert response.status_code == 404


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.json['status'] == 'healthy'
        assert response.json['checks']['database']['details'] == {"providers": 0, "bookings": 0}
