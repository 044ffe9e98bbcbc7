from hotel import db
from hotel.errors import ValidationError, clean_text
from hotel.models import ROOM_STATUSES, Booking, Room

PRICE_SLIDER_FLOOR = 1000


def newest_rooms():
    return Room.query.order_by(Room.created_at.desc(), Room.id.desc()).all()


def filter_rooms(rooms, status=None, min_price=None, max_price=None):
    """Keep the rooms matching status and an inclusive price range, in order."""
    filtered = rooms
    if status and status != 'all':
        filtered = [room for room in filtered if room.status == status]
    if min_price is not None:
        filtered = [room for room in filtered if room.price >= min_price]
    if max_price is not None:
        filtered = [room for room in filtered if room.price <= max_price]
    return list(filtered)


def price_ceiling(rooms, floor=PRICE_SLIDER_FLOOR):
    return max([room.price for room in rooms] + [floor])


def parse_price(value, field='price'):
    """Whole, non-negative price from a JSON number or a form/query string."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer')
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f'{field} must be an integer')
        price = int(value)
    elif isinstance(value, int):
        price = value
    elif isinstance(value, str):
        try:
            price = int(value.strip())
        except ValueError:
            raise ValidationError(f'{field} must be an integer')
    else:
        raise ValidationError(f'{field} must be an integer')
    if price < 0:
        raise ValidationError(f'{field} cannot be negative')
    return price


def clean_room_fields(data, partial=False):
    """Validate room form data; returns only the fields that were sent."""
    fields = {}

    if 'name' in data or not partial:
        name = clean_text(data.get('name'), 'name')
        if not name:
            raise ValidationError('Room name is required')
        fields['name'] = name

    if 'description' in data:
        fields['description'] = clean_text(data.get('description'), 'description')

    if 'price' in data or not partial:
        price = parse_price(data.get('price'))
        if price is None:
            raise ValidationError('price is required')
        fields['price'] = price

    if 'status' in data:
        if data['status'] not in ROOM_STATUSES:
            raise ValidationError('Invalid status value')
        fields['status'] = data['status']

    return fields


def dashboard_stats():
    rooms = db.session.execute(db.select(Room.status)).scalars().all()

    bookings = db.session.execute(db.select(Booking.status)).scalars().all()
    return {
        'total_rooms': len(rooms),
        'available_rooms': sum(1 for status in rooms if status == 'available'),
        'total_bookings': len(bookings),
        'pending_bookings': sum(1 for status in bookings if status == 'pending'),
    }
