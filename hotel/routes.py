import datetime
import logging

from flask import Blueprint, abort, jsonify, request, send_from_directory
from flask_jwt_extended import create_access_token, get_jwt, get_jwt_identity, jwt_required
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hotel import db
from hotel.auth import admin_required, authenticate, revoke_token
from hotel.bookings import (
    change_booking_status, find_conflict, parse_date, status_counts, submit_booking,
)
from hotel.errors import ApiError, NotFoundError, StorageError, ValidationError, clean_text
from hotel.models import BOOKING_STATUSES, Booking, Facility, Room, RoomFacility, User
from hotel.rooms import (
    clean_room_fields, dashboard_stats, filter_rooms, newest_rooms, parse_price, price_ceiling,
)
from hotel.storage import RoomImageStorage

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__)

DUPLICATE_FACILITY = 'A facility with this name already exists'


@api.errorhandler(ApiError)
def handle_api_error(error):
    return jsonify(error.to_dict()), error.status_code


@api.errorhandler(SQLAlchemyError)
def handle_db_error(error):
    db.session.rollback()
    logger.exception('Database error')
    return jsonify({'error': 'An error occurred, please try again'}), 500


def _payload():
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError('Request body must be an object')
    return data


def _get_or_404(model, ident, message):
    obj = db.session.get(model, ident)
    if obj is None:
        raise NotFoundError(message)
    return obj


### AUTH ###

@api.route('/api/auth/login', methods=['POST'])
def login():
    data = _payload()
    user = authenticate(data.get('email'), data.get('password'))
    if user is None:
        return jsonify({'error': 'Invalid email or password'}), 401

    access_token = create_access_token(identity=user.email, additional_claims={'role': user.role})
    logger.info('User %s signed in', user.email)
    return jsonify({'access_token': access_token, 'user': user.to_dict()}), 200


@api.route('/api/auth/session', methods=['GET'])
@jwt_required()
def get_session():
    user = User.query.filter_by(email=get_jwt_identity()).first()
    if not user:
        return jsonify({'error': 'User not found'}), 404

    expires_at = datetime.datetime.fromtimestamp(get_jwt()['exp'], tz=datetime.timezone.utc)
    return jsonify({'user': user.to_dict(), 'expires_at': expires_at.isoformat()}), 200


@api.route('/api/auth/logout', methods=['POST'])
@jwt_required()
def logout():
    revoke_token(get_jwt()['jti'])
    logger.info('User %s signed out', get_jwt_identity())
    return jsonify({'message': 'Signed out'}), 200


### PUBLIC ROUTES ###

@api.route('/api/rooms', methods=['GET'])
def get_rooms():
    rooms = newest_rooms()
    filtered = filter_rooms(
        rooms,
        status=request.args.get('status'),
        min_price=parse_price(request.args.get('min_price'), 'min_price'),
        max_price=parse_price(request.args.get('max_price'), 'max_price'),
    )
    return jsonify({
        'rooms': [room.to_dict() for room in filtered],
        'count': len(filtered),
        'max_price': price_ceiling(rooms),
    }), 200


@api.route('/api/rooms/featured', methods=['GET'])
def get_featured_rooms():
    rooms = filter_rooms(newest_rooms(), status='available')[:3]
    return jsonify([room.to_dict() for room in rooms]), 200


@api.route('/api/rooms/<int:room_id>', methods=['GET'])
def get_room(room_id):
    room = _get_or_404(Room, room_id, 'Room not found')
    return jsonify(room.to_dict(with_facilities=True)), 200


@api.route('/api/rooms/<int:room_id>/availability', methods=['POST'])
def check_room_availability(room_id):
    room = _get_or_404(Room, room_id, 'Room not found')
    data = _payload()
    check_in = parse_date(data.get('check_in'), 'check_in')
    check_out = parse_date(data.get('check_out'), 'check_out')
    if check_out <= check_in:
        raise ValidationError('Check-out date must be after check-in date')

    conflict = find_conflict(room.id, check_in, check_out)
    if conflict is None:
        return jsonify({'available': True, 'conflict': None}), 200
    return jsonify({
        'available': False,
        'conflict': {
            'guest_name': conflict.guest_name,
            'check_in': conflict.check_in.isoformat(),
            'check_out': conflict.check_out.isoformat(),
        },
    }), 200


@api.route('/api/bookings', methods=['POST'])
def create_booking():
    data = _payload()
    room_id = data.get('room_id')
    try:
        room_id = int(room_id)
    except (TypeError, ValueError):
        raise ValidationError('room_id is required')

    booking = submit_booking(
        room_id,
        guest_name=data.get('guest_name'),
        check_in=data.get('check_in'),
        check_out=data.get('check_out'),
        email=data.get('email'),
        phone=data.get('phone'),
    )
    return jsonify(booking.to_dict()), 201


@api.route('/storage/<bucket>/<path:key>', methods=['GET'])
def storage_object(bucket, key):
    storage = RoomImageStorage.from_app()
    if bucket != storage.bucket:
        abort(404)
    return send_from_directory(storage.bucket_path, key)


### ADMIN ROUTES ###

@api.route('/api/admin/dashboard', methods=['GET'])
@admin_required
def get_dashboard():
    return jsonify(dashboard_stats()), 200


# Rooms

@api.route('/api/admin/rooms', methods=['GET'])
@admin_required
def admin_get_rooms():
    return jsonify([room.to_dict(with_facilities=True) for room in newest_rooms()]), 200


def _store_image(storage, image):
    key = storage.upload(image)
    return key, storage.public_url(key)


def _discard_image(storage, key):
    if not key:
        return
    try:
        storage.remove([key])
    except StorageError as error:
        logger.warning('Could not delete image %s from storage: %s', key, error.message)


@api.route('/api/admin/rooms', methods=['POST'])
@admin_required
def create_room():
    data = _payload()
    room = Room(**clean_room_fields(data))
    storage = RoomImageStorage.from_app()

    image = request.files.get('image')
    if image and image.filename:
        room.image_key, room.image_url = _store_image(storage, image)
    else:
        room.image_url = clean_text(data.get('image_url'), 'image_url')

    image_key = room.image_key
    db.session.add(room)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        _discard_image(storage, image_key)
        raise

    logger.info('Room %s created', room.id)
    return jsonify(room.to_dict(with_facilities=True)), 201


@api.route('/api/admin/rooms/<int:room_id>', methods=['PUT'])
@admin_required
def update_room(room_id):
    room = _get_or_404(Room, room_id, 'Room not found')
    data = _payload()
    fields = clean_room_fields(data, partial=True)
    storage = RoomImageStorage.from_app()

    old_key = new_key = None
    image = request.files.get('image')
    if image and image.filename:
        old_key = room.image_key
        new_key, image_url = _store_image(storage, image)
        room.image_key, room.image_url = new_key, image_url
    elif 'image_url' in data:
        image_url = clean_text(data['image_url'], 'image_url')
        old_key = room.image_key
        room.image_key, room.image_url = None, image_url

    for name, value in fields.items():
        setattr(room, name, value)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        _discard_image(storage, new_key)
        raise

    _discard_image(storage, old_key)
    logger.info('Room %s updated', room.id)
    return jsonify(room.to_dict(with_facilities=True)), 200


@api.route('/api/admin/rooms/<int:room_id>', methods=['DELETE'])
@admin_required
def delete_room(room_id):
    room = _get_or_404(Room, room_id, 'Room not found')
    if room.bookings.count():
        return jsonify({'error': 'Room has bookings and cannot be deleted'}), 409

    # Storage failures are only logged here.
    _discard_image(RoomImageStorage.from_app(), room.image_key)

    db.session.delete(room)
    db.session.commit()
    logger.info('Room %s deleted', room_id)
    return jsonify({'message': 'Room deleted'}), 200


# Facilities

def _facility_name(data):
    name = clean_text(data.get('name'), 'name')
    if not name:
        raise ValidationError('Facility name is required')
    return name


def _commit_facility(facility):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ApiError(DUPLICATE_FACILITY, status_code=409)
    logger.info('Facility %s saved as %r', facility.id, facility.name)


@api.route('/api/admin/facilities', methods=['GET'])
@admin_required
def get_facilities():
    facilities = Facility.query.order_by(Facility.name).all()
    return jsonify([facility.to_dict() for facility in facilities]), 200


@api.route('/api/admin/facilities', methods=['POST'])
@admin_required
def create_facility():
    facility = Facility(name=_facility_name(_payload()))
    db.session.add(facility)
    _commit_facility(facility)
    return jsonify(facility.to_dict()), 201


@api.route('/api/admin/facilities/<int:facility_id>', methods=['PUT'])
@admin_required
def update_facility(facility_id):
    facility = _get_or_404(Facility, facility_id, 'Facility not found')
    facility.name = _facility_name(_payload())
    _commit_facility(facility)
    return jsonify(facility.to_dict()), 200


@api.route('/api/admin/facilities/<int:facility_id>', methods=['DELETE'])
@admin_required
def delete_facility(facility_id):
    facility = _get_or_404(Facility, facility_id, 'Facility not found')
    db.session.delete(facility)  # room links go with it
    db.session.commit()
    logger.info('Facility %s deleted', facility_id)
    return jsonify({'message': 'Facility deleted'}), 200


# Room facilities

@api.route('/api/admin/room-facilities', methods=['GET'])
@admin_required
def get_room_facilities():
    links = RoomFacility.query.order_by(RoomFacility.room_id, RoomFacility.facility_id).all()
    return jsonify([link.to_dict() for link in links]), 200


@api.route('/api/admin/rooms/<int:room_id>/facilities', methods=['PUT'])
@admin_required
def assign_facilities(room_id):
    room = _get_or_404(Room, room_id, 'Room not found')
    facility_ids = _payload().get('facility_ids')
    if not isinstance(facility_ids, list):
        raise ValidationError('facility_ids must be a list')
    try:
        facility_ids = sorted({int(facility_id) for facility_id in facility_ids})
    except (TypeError, ValueError):
        raise ValidationError('facility_ids must contain integers')

    found = Facility.query.filter(Facility.id.in_(facility_ids)).all() if facility_ids else []
    if len(found) != len(facility_ids):
        raise ValidationError('Unknown facility id')

    room.facility_links.clear()
    db.session.flush()
    db.session.add_all([RoomFacility(room_id=room.id, facility_id=facility.id) for facility in found])
    db.session.commit()

    logger.info('Room %s facilities set to %s', room.id, facility_ids)
    return jsonify(room.to_dict(with_facilities=True)), 200


# Bookings

@api.route('/api/admin/bookings', methods=['GET'])
@admin_required
def get_bookings():
    status = request.args.get('status', 'all')
    if status != 'all' and status not in BOOKING_STATUSES:
        raise ValidationError('Invalid status value')

    bookings = Booking.query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()
    shown = [booking for booking in bookings if status == 'all' or booking.status == status]
    return jsonify({
        'bookings': [booking.to_dict(with_room=True) for booking in shown],
        'counts': status_counts(bookings),
    }), 200


@api.route('/api/admin/bookings/<int:booking_id>/status', methods=['PATCH'])
@admin_required
def update_booking_status(booking_id):
    booking = change_booking_status(booking_id, _payload().get('status'))
    return jsonify(booking.to_dict(with_room=True)), 200
