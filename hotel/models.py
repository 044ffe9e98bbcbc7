# hotel/models.py
import datetime

from hotel import db

ROOM_STATUSES = ('available', 'booked', 'maintenance')
BOOKING_STATUSES = ('pending', 'confirmed', 'canceled')
ACTIVE_BOOKING_STATUSES = ('pending', 'confirmed')


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(100), unique=True, nullable=False)
    password = db.Column(db.String(100), nullable=False)  # bcrypt hash
    role = db.Column(db.Enum('guest', 'admin', name='user_role'), nullable=False, default='admin')
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
        }


class Room(db.Model):
    __tablename__ = 'rooms'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(500))
    image_key = db.Column(db.String(255))
    status = db.Column(db.Enum(*ROOM_STATUSES, name='room_status'), nullable=False, default='available')
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    facility_links = db.relationship(
        'RoomFacility', back_populates='room', cascade='all, delete-orphan'
    )
    bookings = db.relationship('Booking', back_populates='room', lazy='dynamic')

    @property
    def facilities(self):
        return sorted((link.facility for link in self.facility_links), key=lambda f: f.name)

    def to_dict(self, with_facilities=False):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'image_url': self.image_url,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }
        if with_facilities:
            data['facilities'] = [facility.to_dict() for facility in self.facilities]
        return data


class Facility(db.Model):
    __tablename__ = 'facilities'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)

    room_links = db.relationship(
        'RoomFacility', back_populates='facility', cascade='all, delete-orphan'
    )

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class RoomFacility(db.Model):
    __tablename__ = 'room_facilities'

    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id', ondelete='CASCADE'), primary_key=True)
    facility_id = db.Column(db.Integer, db.ForeignKey('facilities.id', ondelete='CASCADE'), primary_key=True)

    room = db.relationship('Room', back_populates='facility_links')
    facility = db.relationship('Facility', back_populates='room_links')

    def to_dict(self):
        return {'room_id': self.room_id, 'facility_id': self.facility_id}


class Booking(db.Model):
    __tablename__ = 'bookings'

    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False, index=True)
    guest_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(30))
    check_in = db.Column(db.Date, nullable=False)
    check_out = db.Column(db.Date, nullable=False)
    status = db.Column(db.Enum(*BOOKING_STATUSES, name='booking_status'), nullable=False, default='pending')
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    room = db.relationship('Room', back_populates='bookings')

    def to_dict(self, with_room=False):
        data = {
            'id': self.id,
            'room_id': self.room_id,
            'guest_name': self.guest_name,
            'email': self.email,
            'phone': self.phone,
            'check_in': _iso(self.check_in),
            'check_out': _iso(self.check_out),
            'status': self.status,
            'created_at': _iso(self.created_at),
        }
        if with_room:
            data['room'] = {'name': self.room.name, 'price': self.room.price} if self.room else None
        return data


class TokenBlocklist(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), nullable=False, unique=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
