import json
import shutil
import tempfile
import threading
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth.models import User
from django.core import mail
from django.core.cache import cache
from django.core.management import call_command
from django.db import connection
from django.test import TestCase, TransactionTestCase, Client, override_settings
from django.utils import timezone

from movies.models import Movie
from movies.services import CatalogService
from movies.theater_models import Seat, Showtime
from .email_utils import send_booking_confirmation_email
from .exceptions import (
    InvalidRequest, NotFound, SeatUnavailable, SeatAlreadyBooked, PastShowtime,
    AlreadyCancelled, Immutable, CancellationWindowClosed, DuplicateTransaction, InsufficientAvailability,
)
from .models import Booking, BookingSeat
from .services import BookingService
from .tasks import generate_booking_artifacts
from .utils import PriceCalculator, SeatManager


def make_movie(title='Test Movie', price='40.00'):
    return Movie.objects.create(
        title=title,
        genre='Drama',
        duration=120,
        price=Decimal(price),
        release_date=timezone.localdate(),
    )


def make_showtime(movie, room, starts_in=timedelta(days=1), price='40.00'):
    start = timezone.localtime(timezone.now() + starts_in)
    return Showtime.objects.create(
        movie=movie,
        room=room,
        date=start.date(),
        time=start.time().replace(microsecond=0),
        price=Decimal(price),
        available_seats=room.capacity,
        total_seats=room.capacity,
    )


class BookingFixtureMixin:

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username='testuser', email='test@example.com', password='testpass123')
        self.other = User.objects.create_user(username='other', email='other@example.com', password='testpass123')
        self.admin = User.objects.create_user(username='admin', email='admin@example.com', password='testpass123', is_staff=True)

        self.movie = make_movie()
        # 30 seats, 3 per row: rows A-B vip, C-E premium, F-J standard
        self.room = CatalogService.create_room(name='Room 1', capacity=30, location='Floor 1')
        self.showtime = make_showtime(self.movie, self.room)

    def seat(self, label, room=None):
        return Seat.objects.get(room=room or self.room, row=label[0], number=int(label[1:]))

    def book(self, labels, user=None, showtime=None):
        return BookingService.create_booking(
            (showtime or self.showtime).id,
            [self.seat(label).id for label in labels],
            user or self.user,
        )


class PriceCalculatorTests(BookingFixtureMixin, TestCase):

    def test_standard_plus_vip(self):

        details = PriceCalculator.calculate_booking_amount(self.showtime, [self.seat('F1'), self.seat('A1')])

        self.assertEqual([price for _, price in details['seat_prices']], [Decimal('40.00'), Decimal('48.00')])
        self.assertEqual(details['subtotal'], Decimal('88.00'))
        self.assertEqual(details['service_fee'], Decimal('4.40'))
        self.assertEqual(details['total_amount'], Decimal('92.40'))

    def test_seat_price_rounds_half_up(self):

        # 10.05 x 1.10 = 11.055
        self.assertEqual(PriceCalculator.seat_price(Decimal('10.05'), 'premium'), Decimal('11.06'))

    def test_same_inputs_same_total(self):

        seats = [self.seat('C1'), self.seat('C2'), self.seat('G1')]
        first = PriceCalculator.calculate_booking_amount(self.showtime, seats)
        second = PriceCalculator.calculate_booking_amount(self.showtime, seats)
        self.assertEqual(first['total_amount'], second['total_amount'])

    def test_refund_is_eighty_percent(self):
        self.assertEqual(PriceCalculator.refund_amount(Decimal('92.40')), Decimal('73.92'))


class BookingCreationTests(BookingFixtureMixin, TestCase):

    def test_create_booking(self):

        booking = self.book(['F1', 'A1'])

        self.assertEqual(booking.status, 'confirmed')
        self.assertEqual(booking.total_price, Decimal('92.40'))
        self.assertEqual(booking.customer_email, 'test@example.com')
        self.assertEqual(booking.payment_method, 'credit_card')
        self.assertRegex(booking.transaction_id, r'^TXN-\d+-[a-z0-9]{9}$')
        self.assertEqual(
            sorted(line.price for line in booking.booking_seats.all()),
            [Decimal('40.00'), Decimal('48.00')]
        )

        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 28)

    def test_past_showtime_writes_nothing(self):

        past = make_showtime(self.movie, self.room, starts_in=-timedelta(minutes=10))

        with self.assertRaises(PastShowtime):
            self.book(['A1'], showtime=past)

        past.refresh_from_db()
        self.assertEqual(past.available_seats, 30)
        self.assertFalse(Booking.objects.exists())
        self.assertFalse(BookingSeat.objects.exists())

    def test_unknown_showtime(self):

        with self.assertRaises(NotFound):
            BookingService.create_booking(999999, [self.seat('A1').id], self.user)

    def test_duplicate_seat_ids_rejected(self):

        seat_id = self.seat('A1').id
        with self.assertRaises(InvalidRequest):
            BookingService.create_booking(self.showtime.id, [seat_id, seat_id], self.user)

    def test_empty_seat_list_rejected(self):

        with self.assertRaises(InvalidRequest):
            BookingService.create_booking(self.showtime.id, [], self.user)

    def test_seat_from_another_room(self):

        other_room = CatalogService.create_room(name='Room 2', capacity=10, location='Floor 2')
        foreign = self.seat('A1', room=other_room)

        with self.assertRaises(SeatUnavailable) as ctx:
            BookingService.create_booking(self.showtime.id, [self.seat('A1').id, foreign.id], self.user)

        self.assertEqual(ctx.exception.seat_ids, [foreign.id])
        self.assertFalse(Booking.objects.exists())

    def test_seat_under_maintenance(self):

        seat = self.seat('B2')
        seat.status = 'maintenance'
        seat.save()

        with self.assertRaises(SeatUnavailable):
            self.book(['B2'])

    def test_seat_already_booked(self):

        self.book(['A1', 'A2'])

        with self.assertRaises(SeatAlreadyBooked) as ctx:
            self.book(['A2', 'B1'], user=self.other)

        self.assertEqual(ctx.exception.seat_ids, [self.seat('A2').id])
        # Nothing from the rejected request is kept
        self.assertFalse(BookingSeat.objects.filter(seat=self.seat('B1')).exists())
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 28)

    def test_completed_booking_still_holds_its_seats(self):

        booking = self.book(['A1'])
        Booking.objects.filter(pk=booking.pk).update(status='completed')

        with self.assertRaises(SeatAlreadyBooked) as ctx:
            self.book(['A1', 'A2'], user=self.other)

        self.assertEqual(ctx.exception.seat_ids, [self.seat('A1').id])
        self.assertEqual(BookingSeat.objects.count(), 1)
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 29)

    def test_transaction_id_collision(self):

        existing = self.book(['A1'])

        with mock.patch('bookings.services.generate_transaction_id', return_value=existing.transaction_id):
            with self.assertRaises(DuplicateTransaction):
                self.book(['B1'], user=self.other)

        self.assertEqual(Booking.objects.count(), 1)
        self.assertFalse(BookingSeat.objects.filter(seat=self.seat('B1')).exists())
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 29)

    def test_counter_exhausted_is_refused_and_logged(self):

        Showtime.objects.filter(pk=self.showtime.pk).update(available_seats=0)

        with self.assertLogs('bookings.services', level='CRITICAL') as logs:
            with self.assertRaises(InsufficientAvailability):
                self.book(['A1'])

        self.assertIn('COUNTER DRIFT', logs.output[0])
        self.assertFalse(Booking.objects.exists())
        self.assertFalse(BookingSeat.objects.exists())
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 0)

    def test_counter_matches_booked_seats(self):

        self.book(['A1', 'A2'])
        self.book(['F1'], user=self.other)
        booking = self.book(['J2'])
        BookingService.cancel_booking(booking.id, self.user, 'user')

        self.showtime.refresh_from_db()
        booked = SeatManager.count_active_booked_seats(self.showtime.id)
        self.assertEqual(booked, 3)
        self.assertEqual(self.showtime.available_seats, self.showtime.total_seats - booked)


class BookingCancellationTests(BookingFixtureMixin, TestCase):

    def test_cancel_releases_seats_and_refunds(self):

        booking = self.book(['F1', 'A1'])

        result = BookingService.cancel_booking(booking.id, self.user, 'user')

        self.assertEqual(result['refund_amount'], Decimal('73.92'))
        booking.refresh_from_db()
        self.assertEqual(booking.status, 'cancelled')
        self.assertIsNotNone(booking.cancelled_at)
        self.assertFalse(booking.booking_seats.filter(is_active=True).exists())
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 30)

    def test_cancel_twice(self):

        booking = self.book(['A1'])
        BookingService.cancel_booking(booking.id, self.user, 'user')

        with self.assertRaises(AlreadyCancelled):
            BookingService.cancel_booking(booking.id, self.user, 'user')

        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 30)

    def test_cancellation_window(self):

        soon = make_showtime(self.movie, self.room, starts_in=timedelta(minutes=90))
        booking = self.book(['A1'], showtime=soon)

        with self.assertRaises(CancellationWindowClosed):
            BookingService.cancel_booking(booking.id, self.user, 'user')

        result = BookingService.cancel_booking(booking.id, self.admin, 'admin')
        self.assertEqual(result['booking_id'], booking.id)
        soon.refresh_from_db()
        self.assertEqual(soon.available_seats, 30)

    def test_completed_booking_is_immutable(self):

        booking = self.book(['A1'])
        Booking.objects.filter(pk=booking.pk).update(status='completed')

        with self.assertRaises(Immutable):
            BookingService.cancel_booking(booking.id, self.admin, 'admin')

    def test_other_users_booking_not_found(self):

        booking = self.book(['A1'])

        with self.assertRaises(NotFound):
            BookingService.cancel_booking(booking.id, self.other, 'user')
        with self.assertRaises(NotFound):
            BookingService.get_booking(booking.id, self.other, 'user')

    def test_book_cancel_rebook(self):

        first = self.book(['A1', 'A2'])
        BookingService.cancel_booking(first.id, self.user, 'user')

        second = self.book(['A2', 'A1'], user=self.other)

        self.assertEqual(second.status, 'confirmed')
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 28)
        self.assertEqual(SeatManager.booked_seat_ids(self.showtime.id), {self.seat('A1').id, self.seat('A2').id})


class BookingArtifactTests(BookingFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.media_root = tempfile.mkdtemp()
        self.settings_override = override_settings(MEDIA_ROOT=self.media_root)
        self.settings_override.enable()

    def tearDown(self):
        self.settings_override.disable()
        shutil.rmtree(self.media_root, ignore_errors=True)
        super().tearDown()

    def test_artifacts_and_email_after_commit(self):

        with self.captureOnCommitCallbacks(execute=True):
            booking = self.book(['F1', 'A1'])

        booking.refresh_from_db()
        self.assertTrue(booking.qr_code_data.startswith('data:image/png;base64,'))
        self.assertIn(f"receipt-{booking.transaction_id}", booking.receipt_url)
        self.assertTrue(booking.confirmation_email_sent)

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['test@example.com'])
        self.assertIn(booking.transaction_id, message.subject)
        self.assertEqual(len(message.attachments), 2)

    def test_confirmation_email_sent_once(self):

        with self.captureOnCommitCallbacks(execute=True):
            booking = self.book(['A1'])

        result = send_booking_confirmation_email(booking.id)

        self.assertEqual(result, "Email already sent - skipping")
        self.assertEqual(len(mail.outbox), 1)

    def test_qr_failure_does_not_affect_booking(self):

        with mock.patch('bookings.artifacts.generate_booking_qr', side_effect=RuntimeError('qr down')):
            with self.captureOnCommitCallbacks(execute=True):
                booking = self.book(['A1'])

        booking.refresh_from_db()
        self.assertEqual(booking.status, 'confirmed')
        self.assertEqual(booking.qr_code_data, '')
        self.assertTrue(booking.receipt_url)
        self.assertEqual(len(mail.outbox), 1)

    def test_queue_failure_does_not_affect_booking(self):

        with mock.patch.object(generate_booking_artifacts, 'delay', side_effect=ConnectionError('broker down')):
            with self.captureOnCommitCallbacks(execute=True):
                booking = self.book(['A1'])

        self.assertEqual(Booking.objects.get(pk=booking.pk).status, 'confirmed')
        self.assertEqual(len(mail.outbox), 0)

    def test_no_email_for_cancelled_booking(self):

        booking = self.book(['A1'])
        BookingService.cancel_booking(booking.id, self.user, 'user')

        result = send_booking_confirmation_email(booking.id)

        self.assertIn('cancelled', result)
        self.assertEqual(len(mail.outbox), 0)


class SeatCounterReconciliationTests(BookingFixtureMixin, TestCase):

    def test_reports_and_fixes_drift(self):

        self.book(['A1', 'A2'])
        Showtime.objects.filter(pk=self.showtime.pk).update(available_seats=30)

        report = BookingService.reconcile_showtime(self.showtime.id)
        self.assertEqual(report['drift'], 2)
        self.assertEqual(report['expected_available_seats'], 28)
        self.assertFalse(report['fixed'])

        report = BookingService.reconcile_showtime(self.showtime.id, fix=True)
        self.assertTrue(report['fixed'])
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 28)

    def test_no_drift(self):

        self.book(['A1'])
        self.assertEqual(BookingService.reconcile_all(), [])

    def test_management_command(self):

        self.book(['A1'])
        Showtime.objects.filter(pk=self.showtime.pk).update(available_seats=30)
        out = StringIO()

        call_command('reconcile_seat_counters', '--fix', stdout=out)

        self.assertIn('Found 1 showtimes', out.getvalue())
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 29)


class BookingApiTests(BookingFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = Client()

    def post_booking(self, labels):
        return self.client.post(
            '/api/bookings/',
            data=json.dumps({
                'showtime_id': self.showtime.id,
                'seat_ids': [self.seat(label).id for label in labels],
            }),
            content_type='application/json',
        )

    def test_requires_login(self):

        response = self.post_booking(['A1'])

        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.json()['success'])

    def test_create_booking(self):

        self.client.force_login(self.user)
        response = self.post_booking(['F1', 'A1'])

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body['success'])
        booking = body['data']['booking']
        self.assertEqual(booking['total_price'], '92.40')
        self.assertEqual(len(booking['booking_seats']), 2)
        self.assertEqual(booking['showtime']['id'], self.showtime.id)

    def test_conflict(self):

        self.book(['A1'], user=self.other)
        self.client.force_login(self.user)

        response = self.post_booking(['A1', 'A2'])

        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['code'], 'seat_already_booked')
        self.assertEqual(body['booked_seats'], [self.seat('A1').id])

    def test_unknown_showtime(self):

        self.client.force_login(self.user)
        response = self.client.post(
            '/api/bookings/',
            data=json.dumps({'showtime_id': 999999, 'seat_ids': [self.seat('A1').id]}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.json()['success'])

    def test_invalid_json(self):

        self.client.force_login(self.user)
        response = self.client.post('/api/bookings/', data='{not json', content_type='application/json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'invalid_request')

    def test_list_only_own_bookings(self):

        self.book(['A1'])
        self.book(['A2'], user=self.other)
        self.client.force_login(self.user)

        response = self.client.get('/api/bookings/')

        data = response.json()['data']
        self.assertEqual(len(data['bookings']), 1)
        self.assertEqual(data['pagination']['total'], 1)

    def test_cancel_via_api(self):

        booking = self.book(['F1', 'A1'])
        self.client.force_login(self.user)

        response = self.client.post(f'/api/bookings/{booking.id}/cancel/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['refund_amount'], '73.92')

        response = self.client.post(f'/api/bookings/{booking.id}/cancel/')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'already_cancelled')

    def test_admin_sees_any_booking(self):

        booking = self.book(['A1'])

        self.client.force_login(self.other)
        self.assertEqual(self.client.get(f'/api/bookings/{booking.id}/').status_code, 404)

        self.client.force_login(self.admin)
        self.assertEqual(self.client.get(f'/api/bookings/{booking.id}/').status_code, 200)

    def test_receipt_not_ready(self):

        booking = self.book(['A1'])
        self.client.force_login(self.user)

        response = self.client.get(f'/api/bookings/{booking.id}/receipt/')

        self.assertEqual(response.status_code, 404)


@mock.patch.object(generate_booking_artifacts, 'delay')
class ConcurrentBookingTests(BookingFixtureMixin, TransactionTestCase):

    def run_concurrently(self, seat_sets):

        barrier = threading.Barrier(len(seat_sets))
        results = [None] * len(seat_sets)

        def attempt(index, seat_ids, user):
            try:
                barrier.wait()
                results[index] = BookingService.create_booking(self.showtime.id, seat_ids, user)
            except Exception as e:
                results[index] = e
            finally:
                connection.close()

        threads = []
        for index, labels in enumerate(seat_sets):
            user = User.objects.create_user(username=f'racer{index}', email=f'racer{index}@example.com')
            seat_ids = [self.seat(label).id for label in labels]
            threads.append(threading.Thread(target=attempt, args=(index, seat_ids, user)))

        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results

    def test_same_seat_has_one_winner(self, _delay):

        results = self.run_concurrently([['A1']] * 5)

        winners = [r for r in results if isinstance(r, Booking)]
        losers = [r for r in results if isinstance(r, SeatAlreadyBooked)]
        self.assertEqual(len(winners), 1, results)
        self.assertEqual(len(losers), 4, results)

        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 29)
        self.assertEqual(BookingSeat.objects.filter(is_active=True).count(), 1)

    def test_overlapping_seat_sets(self, _delay):

        results = self.run_concurrently([['A1', 'A2'], ['A2', 'A3']])

        winners = [r for r in results if isinstance(r, Booking)]
        losers = [r for r in results if isinstance(r, SeatAlreadyBooked)]
        self.assertEqual(len(winners), 1, results)
        self.assertEqual(len(losers), 1, results)
        self.assertEqual(losers[0].seat_ids, [self.seat('A2').id])

        # The loser left no partial rows behind
        self.assertEqual(Booking.objects.count(), 1)
        self.assertEqual(
            set(BookingSeat.objects.values_list('seat_id', flat=True)),
            {line.seat_id for line in winners[0].booking_seats.all()},
        )
        self.showtime.refresh_from_db()
        self.assertEqual(self.showtime.available_seats, 28)
