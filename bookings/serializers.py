from movies.serializers import serialize_showtime, serialize_seat


def serialize_booking(booking):

    return {
        'id': booking.id,
        'transaction_id': booking.transaction_id,
        'user_id': booking.user_id,
        'status': booking.status,
        'total_price': booking.total_price,
        'payment_method': booking.payment_method,
        'customer_email': booking.customer_email,
        'purchase_date': booking.purchase_date,
        'qr_code_data': booking.qr_code_data or None,
        'receipt_url': booking.receipt_url or None,
        'cancelled_at': booking.cancelled_at,
        'refund_amount': booking.refund_amount,
        'showtime': serialize_showtime(booking.showtime),
        'booking_seats': [
            {
                'id': line.id,
                'price': line.price,
                'seat': serialize_seat(line.seat),
            }
            for line in booking.booking_seats.all()
        ],
    }
