import datetime

import pytest

from hotel import create_app, db
from hotel.auth import hash_password
from hotel.models import Booking, Facility, Room, User


@pytest.fixture
def app(tmp_path):
    app = create_app('hotel.config.TestConfig')
    app.config['STORAGE_ROOT'] = str(tmp_path / 'storage')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    user = User(name='Admin', email='admin@hotel.test', password=hash_password('s3cret'), role='admin')
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def auth_headers(client, admin):
    response = client.post('/api/auth/login', json={'email': 'admin@hotel.test', 'password': 's3cret'})
    return {'Authorization': f"Bearer {response.get_json()['access_token']}"}


def make_room(name='Deluxe Suite', price=200, status='available', **kwargs):
    room = Room(name=name, price=price, status=status, **kwargs)
    db.session.add(room)
    db.session.commit()
    return room


def make_facility(name):
    facility = Facility(name=name)
    db.session.add(facility)
    db.session.commit()
    return facility


def make_booking(room, check_in, check_out, status='confirmed', guest_name='Jane Doe'):
    booking = Booking(
        room_id=room.id,
        guest_name=guest_name,
        check_in=datetime.date.fromisoformat(check_in),
        check_out=datetime.date.fromisoformat(check_out),
        status=status,
    )
    db.session.add(booking)
    db.session.commit()
    return booking
