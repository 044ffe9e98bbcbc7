import io
import os

import pytest
from sqlalchemy.exc import SQLAlchemyError

from hotel import db
from hotel.models import Booking, Facility, Room, RoomFacility

from conftest import make_booking, make_facility, make_room


def test_admin_routes_require_token(client, app):
    assert client.get('/api/admin/rooms').status_code == 401
    assert client.get('/api/admin/bookings').status_code == 401


def test_guest_role_is_forbidden(client, app):
    from hotel.auth import hash_password
    from hotel.models import User

    db.session.add(User(name='Guest', email='guest@hotel.test', password=hash_password('pw'), role='guest'))
    db.session.commit()
    token = client.post('/api/auth/login', json={'email': 'guest@hotel.test', 'password': 'pw'}).get_json()['access_token']

    response = client.get('/api/admin/dashboard', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 403


def test_login_rejects_bad_password(client, admin):
    response = client.post('/api/auth/login', json={'email': 'admin@hotel.test', 'password': 'nope'})
    assert response.status_code == 401
    assert response.get_json() == {'error': 'Invalid email or password'}


def test_session_and_logout(client, auth_headers):
    response = client.get('/api/auth/session', headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()['user']['email'] == 'admin@hotel.test'

    assert client.post('/api/auth/logout', headers=auth_headers).status_code == 200

    response = client.get('/api/auth/session', headers=auth_headers)
    assert response.status_code == 401
    assert response.get_json() == {'error': 'Session has been signed out'}


def test_dashboard_stats(client, auth_headers):
    room = make_room(name='A')
    make_room(name='B', status='maintenance')
    make_booking(room, '2031-01-01', '2031-01-03', status='pending')
    make_booking(room, '2031-02-01', '2031-02-03', status='confirmed')

    response = client.get('/api/admin/dashboard', headers=auth_headers)
    assert response.get_json() == {
        'total_rooms': 2,
        'available_rooms': 1,
        'total_bookings': 2,
        'pending_bookings': 1,
    }


def test_room_crud(client, auth_headers):
    response = client.post('/api/admin/rooms', headers=auth_headers, json={
        'name': 'Sea View', 'description': 'Balcony', 'price': '250', 'status': 'available',
    })
    assert response.status_code == 201
    room = response.get_json()
    assert room['price'] == 250
    assert room['facilities'] == []

    response = client.put(
        f"/api/admin/rooms/{room['id']}", headers=auth_headers, json={'status': 'maintenance', 'price': 199}
    )
    assert response.status_code == 200
    assert response.get_json()['status'] == 'maintenance'
    assert response.get_json()['name'] == 'Sea View'

    response = client.delete(f"/api/admin/rooms/{room['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert db.session.get(Room, room['id']) is None


def test_room_validation(client, auth_headers):
    response = client.post('/api/admin/rooms', headers=auth_headers, json={'name': '', 'price': 10})
    assert response.get_json() == {'error': 'Room name is required'}

    response = client.post('/api/admin/rooms', headers=auth_headers, json={'name': 'X', 'price': 'abc'})
    assert response.status_code == 400

    response = client.post('/api/admin/rooms', headers=auth_headers, json={'name': 'X', 'price': 10, 'status': 'closed'})
    assert response.get_json() == {'error': 'Invalid status value'}


def test_room_image_upload_and_delete(client, auth_headers, app):
    response = client.post(
        '/api/admin/rooms',
        headers=auth_headers,
        data={'name': 'Garden', 'price': '120', 'image': (io.BytesIO(b'fake-png'), 'garden view.png')},
        content_type='multipart/form-data',
    )
    assert response.status_code == 201
    room = db.session.get(Room, response.get_json()['id'])
    assert room.image_key.endswith('-garden_view.png')
    assert room.image_url.endswith(f'/storage/room-images/{room.image_key}')

    image_path = os.path.join(app.config['STORAGE_ROOT'], 'room-images', room.image_key)
    assert os.path.exists(image_path)
    assert client.get(f'/storage/room-images/{room.image_key}').data == b'fake-png'

    assert client.delete(f'/api/admin/rooms/{room.id}', headers=auth_headers).status_code == 200
    assert not os.path.exists(image_path)


def test_room_delete_survives_storage_failure(client, auth_headers, monkeypatch):
    from hotel.errors import StorageError
    from hotel.storage import RoomImageStorage

    room = make_room(image_key='123-missing.png', image_url='http://localhost/storage/room-images/123-missing.png')

    def broken(self, keys):
        raise StorageError('disk unavailable')

    monkeypatch.setattr(RoomImageStorage, 'remove', broken)
    assert client.delete(f'/api/admin/rooms/{room.id}', headers=auth_headers).status_code == 200
    assert db.session.get(Room, room.id) is None


def test_room_with_bookings_is_kept(client, auth_headers):
    room = make_room()
    make_booking(room, '2031-01-01', '2031-01-03', status='canceled')

    response = client.delete(f'/api/admin/rooms/{room.id}', headers=auth_headers)
    assert response.status_code == 409
    assert Booking.query.count() == 1


def test_facility_crud_and_duplicates(client, auth_headers):
    response = client.post('/api/admin/facilities', headers=auth_headers, json={'name': '  WiFi '})
    assert response.status_code == 201
    assert response.get_json()['name'] == 'WiFi'

    response = client.post('/api/admin/facilities', headers=auth_headers, json={'name': 'WiFi'})
    assert response.status_code == 409
    assert response.get_json() == {'error': 'A facility with this name already exists'}

    response = client.post('/api/admin/facilities', headers=auth_headers, json={'name': '   '})
    assert response.get_json() == {'error': 'Facility name is required'}

    pool = make_facility('Pool')
    response = client.put(f'/api/admin/facilities/{pool.id}', headers=auth_headers, json={'name': 'WiFi'})
    assert response.status_code == 409

    response = client.get('/api/admin/facilities', headers=auth_headers)
    assert [facility['name'] for facility in response.get_json()] == ['Pool', 'WiFi']


def test_assign_and_delete_facility_removes_links(client, auth_headers):
    room = make_room()
    other = make_room(name='Other')
    wifi = make_facility('WiFi')
    pool = make_facility('Pool')

    response = client.put(
        f'/api/admin/rooms/{room.id}/facilities', headers=auth_headers, json={'facility_ids': [wifi.id, pool.id]}
    )
    assert response.status_code == 200
    assert [facility['name'] for facility in response.get_json()['facilities']] == ['Pool', 'WiFi']

    client.put(f'/api/admin/rooms/{other.id}/facilities', headers=auth_headers, json={'facility_ids': [wifi.id]})

    response = client.put(
        f'/api/admin/rooms/{room.id}/facilities', headers=auth_headers, json={'facility_ids': [wifi.id]}
    )
    assert [facility['name'] for facility in response.get_json()['facilities']] == ['WiFi']

    response = client.put(
        f'/api/admin/rooms/{room.id}/facilities', headers=auth_headers, json={'facility_ids': [9999]}
    )
    assert response.status_code == 400

    assert client.delete(f'/api/admin/facilities/{wifi.id}', headers=auth_headers).status_code == 200
    assert RoomFacility.query.count() == 0
    assert db.session.get(Facility, pool.id) is not None

    response = client.get('/api/admin/room-facilities', headers=auth_headers)
    assert response.get_json() == []


def test_booking_list_and_status_changes(client, auth_headers):
    room = make_room(name='Suite', price=300)
    first = make_booking(room, '2031-01-01', '2031-01-03', status='pending')
    make_booking(room, '2031-02-01', '2031-02-03', status='canceled')

    response = client.get('/api/admin/bookings?status=pending', headers=auth_headers)
    body = response.get_json()
    assert [booking['id'] for booking in body['bookings']] == [first.id]
    assert body['bookings'][0]['room'] == {'name': 'Suite', 'price': 300}
    assert body['counts'] == {'pending': 1, 'confirmed': 0, 'canceled': 1, 'total': 2}

    response = client.patch(
        f'/api/admin/bookings/{first.id}/status', headers=auth_headers, json={'status': 'confirmed'}
    )
    assert response.status_code == 200
    assert response.get_json()['status'] == 'confirmed'

    response = client.patch(
        f'/api/admin/bookings/{first.id}/status', headers=auth_headers, json={'status': 'pending'}
    )
    assert response.status_code == 409
    assert response.get_json() == {'error': 'Cannot change booking from confirmed to pending'}

    assert client.get('/api/admin/bookings?status=archived', headers=auth_headers).status_code == 400


def test_create_admin_command(app):
    from hotel.auth import authenticate

    runner = app.test_cli_runner()
    result = runner.invoke(args=['create-admin', 'Boss', 'Boss@Hotel.test', '--password', 'pw'])
    assert result.exit_code == 0
    assert authenticate('boss@hotel.test', 'pw').role == 'admin'

    result = runner.invoke(args=['create-admin', 'Boss', 'boss@hotel.test', '--password', 'pw'])
    assert result.exit_code != 0


@pytest.mark.parametrize('credentials', [
    {'email': 'admin@hotel.test', 'password': 12345},
    {'email': ['admin@hotel.test'], 'password': 'secret'},
    {'email': 42, 'password': None},
])
def test_login_rejects_non_text_credentials(client, admin, credentials):
    response = client.post('/api/auth/login', json=credentials)
    assert response.status_code == 401
    assert response.get_json() == {'error': 'Invalid email or password'}


def test_room_and_facility_names_must_be_text(client, auth_headers):
    response = client.post('/api/admin/rooms', headers=auth_headers, json={'name': 101, 'price': 10})
    assert response.status_code == 400
    assert response.get_json() == {'error': 'name must be a string'}

    response = client.post(
        '/api/admin/rooms', headers=auth_headers, json={'name': 'X', 'price': 10, 'description': {'a': 1}}
    )
    assert response.get_json() == {'error': 'description must be a string'}

    response = client.post('/api/admin/facilities', headers=auth_headers, json={'name': 42})
    assert response.status_code == 400
    assert response.get_json() == {'error': 'name must be a string'}
    assert Room.query.count() == 0
    assert Facility.query.count() == 0


@pytest.mark.parametrize('price', [99.9, True, '12.5', [100]])
def test_room_price_must_be_whole_number(client, auth_headers, price):
    response = client.post('/api/admin/rooms', headers=auth_headers, json={'name': 'X', 'price': price})
    assert response.status_code == 400
    assert response.get_json() == {'error': 'price must be an integer'}
    assert Room.query.count() == 0


@pytest.mark.parametrize('price', [100.0, ' 100 ', 100])
def test_room_price_accepts_whole_numbers(client, auth_headers, price):
    response = client.post('/api/admin/rooms', headers=auth_headers, json={'name': 'X', 'price': price})
    assert response.status_code == 201
    assert response.get_json()['price'] == 100


def test_room_update_failure_discards_new_image(client, auth_headers, app, monkeypatch):
    room = make_room(name='Garden')
    bucket = os.path.join(app.config['STORAGE_ROOT'], 'room-images')

    def failing_commit():
        raise SQLAlchemyError('database unavailable')

    monkeypatch.setattr(db.session, 'commit', failing_commit)
    response = client.put(
        f'/api/admin/rooms/{room.id}',
        headers=auth_headers,
        data={'name': 'Garden', 'image': (io.BytesIO(b'new-png'), 'new.png')},
        content_type='multipart/form-data',
    )
    monkeypatch.undo()

    assert response.status_code == 500
    assert not os.path.isdir(bucket) or os.listdir(bucket) == []
    assert db.session.get(Room, room.id).image_key is None
