"""Booking conflict checks, guest submissions and admin status changes."""
import datetime
import logging

from sqlalchemy.exc import SQLAlchemyError

from hotel import db
from hotel.errors import BookingError, NotFoundError, ValidationError, clean_text
from hotel.models import ACTIVE_BOOKING_STATUSES, BOOKING_STATUSES, Booking, Room

logger = logging.getLogger(__name__)

# Admin-triggered moves; anything else is refused.
ALLOWED_TRANSITIONS = {
    'pending': ('confirmed', 'canceled'),
    'confirmed': ('canceled',),
    'canceled': ('confirmed',),
}


def parse_date(value, field):
    if value is None or value == '':
        raise ValidationError(f'{field} is required')
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        pass
    # Full timestamps such as 2031-01-01T00:00:00Z are cut to their day.
    try:
        return datetime.datetime.fromisoformat(value.replace('Z', '+00:00')).date()
    except ValueError:
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')


def validate_stay(check_in, check_out, today=None):
    """Check the requested stay against the calendar rules.

    Check-in may be today but not earlier, and check-out has to fall on a
    later day than check-in.
    """
    today = today or datetime.date.today()
    if check_in < today:
        raise ValidationError('Check-in date cannot be in the past')
    if check_out <= check_in:
        raise ValidationError('Check-out date must be after check-in date')


def find_conflict(room_id, check_in, check_out, exclude_id=None):
    """Return the first active booking of the room overlapping the stay.

    Stays are half-open ``[check_in, check_out)`` ranges, so a guest may
    check in on the day another one checks out. Canceled bookings never
    count. Query failures propagate to the caller.
    """
    query = Booking.query.filter(
        Booking.room_id == room_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.check_in < check_out,
        Booking.check_out > check_in,
    )
    if exclude_id is not None:
        query = query.filter(Booking.id != exclude_id)
    try:
        return query.order_by(Booking.check_in, Booking.id).first()
    except SQLAlchemyError:
        logger.exception('Conflict check failed for room %s', room_id)
        raise


def conflict_payload(booking):
    return {
        'conflict': {
            'guest_name': booking.guest_name,
            'check_in': booking.check_in.isoformat(),
            'check_out': booking.check_out.isoformat(),
        }
    }


def _lock_room(room_id):
    stmt = db.select(Room).where(Room.id == room_id).with_for_update()
    return db.session.execute(stmt).scalar_one_or_none()


def submit_booking(room_id, guest_name, check_in, check_out, email=None, phone=None, today=None):
    guest_name = clean_text(guest_name, 'guest_name')
    if not guest_name:
        raise ValidationError('Guest name is required')
    email = clean_text(email, 'email')
    phone = clean_text(phone, 'phone')
    check_in = parse_date(check_in, 'check_in')
    check_out = parse_date(check_out, 'check_out')
    validate_stay(check_in, check_out, today=today)

    # The room row lock serializes submissions for the same room, so the
    # re-check and the insert commit together.
    try:
        room = _lock_room(room_id)
        if room is None:
            raise NotFoundError(f'Room with id {room_id} does not exist.')

        conflict = find_conflict(room.id, check_in, check_out)
        if conflict is not None:
            raise BookingError(
                'This room is already booked for the selected dates',
                payload=conflict_payload(conflict),
            )

        booking = Booking(
            room_id=room.id,
            guest_name=guest_name,
            email=email,
            phone=phone,
            check_in=check_in,
            check_out=check_out,
            status='pending',
        )
        db.session.add(booking)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info('Booking %s created for room %s (%s -> %s)', booking.id, room_id, check_in, check_out)
    return booking


def change_booking_status(booking_id, new_status):
    if new_status not in BOOKING_STATUSES:
        raise ValidationError(f'Invalid status value: {new_status}')

    try:
        booking = db.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError('Booking not found')

        current = booking.status
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise BookingError(f'Cannot change booking from {current} to {new_status}')

        if current == 'canceled':
            # Restoring puts the dates back in play.
            _lock_room(booking.room_id)
            conflict = find_conflict(booking.room_id, booking.check_in, booking.check_out, exclude_id=booking.id)
            if conflict is not None:
                raise BookingError(
                    'The room has been booked for these dates since this booking was canceled',
                    payload=conflict_payload(conflict),
                )

        booking.status = new_status
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info('Booking %s moved from %s to %s', booking.id, current, new_status)
    return booking


def status_counts(bookings):
    counts = {status: 0 for status in BOOKING_STATUSES}
    for booking in bookings:
        counts[booking.status] += 1
    counts['total'] = len(bookings)
    return counts
