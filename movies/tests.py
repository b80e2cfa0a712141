import json
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import TestCase, Client
from django.utils import timezone

from bookings.exceptions import InvalidRequest, SlotConflict, HasActiveBookings, ResourceInUse
from bookings.services import BookingService
from bookings.utils import CacheInvalidator
from .models import Movie
from .services import CatalogService, ShowtimeLedger
from .theater_models import Seat, Showtime


class CatalogServiceTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', email='test@example.com', password='testpass123')
        self.movie = Movie.objects.create(
            title='Test Movie', genre='Drama', duration=148,
            price=Decimal('10.00'), release_date=timezone.localdate(),
        )

    def test_seat_generation(self):

        room = CatalogService.create_room(name='Hall', capacity=25, location='Floor 1')

        seats = Seat.objects.filter(room=room)
        self.assertEqual(seats.count(), 25)
        self.assertEqual(seats.filter(row='A').count(), 3)
        self.assertEqual(seats.filter(row='I').count(), 1)
        self.assertFalse(seats.filter(row='J').exists())
        self.assertEqual(set(seats.filter(row__in=['A', 'B']).values_list('seat_type', flat=True)), {'vip'})
        self.assertEqual(set(seats.filter(row__in=['C', 'D', 'E']).values_list('seat_type', flat=True)), {'premium'})
        self.assertEqual(set(seats.filter(row__in=['F', 'G', 'H', 'I']).values_list('seat_type', flat=True)), {'standard'})

    def test_capacity_limits(self):

        with self.assertRaises(InvalidRequest):
            CatalogService.create_room(name='Too big', capacity=501)
        with self.assertRaises(InvalidRequest):
            CatalogService.create_room(name='Empty', capacity=0)

    def test_capacity_change_regenerates_seats(self):

        room = CatalogService.create_room(name='Hall', capacity=20)

        CatalogService.update_room(room.id, capacity=40)

        room.refresh_from_db()
        self.assertEqual(room.capacity, 40)
        self.assertEqual(room.seats.count(), 40)

    def test_capacity_change_refused_when_seats_booked(self):

        room = CatalogService.create_room(name='Hall', capacity=20)
        showtime = ShowtimeLedger.create_showtime(
            self.movie.id, room.id, timezone.localdate() + timedelta(days=1), '18:00'
        )
        BookingService.create_booking(showtime.id, [room.seats.first().id], self.user)

        with self.assertRaises(ResourceInUse):
            CatalogService.update_room(room.id, capacity=40)

        self.assertEqual(room.seats.count(), 20)

    def test_movie_with_showtimes_is_deactivated_not_deleted(self):

        room = CatalogService.create_room(name='Hall', capacity=20)
        ShowtimeLedger.create_showtime(self.movie.id, room.id, timezone.localdate() + timedelta(days=1), '18:00')

        with self.assertRaises(ResourceInUse):
            CatalogService.delete_movie(self.movie.id)

        CatalogService.deactivate_movie(self.movie.id)
        self.movie.refresh_from_db()
        self.assertEqual(self.movie.status, 'inactive')

    def test_rename_to_existing_name(self):

        CatalogService.create_room(name='Hall', capacity=20)
        studio = CatalogService.create_room(name='Studio', capacity=10)

        with self.assertRaises(InvalidRequest):
            CatalogService.update_room(studio.id, name='Hall')

        studio.refresh_from_db()
        self.assertEqual(studio.name, 'Studio')

    def test_delete_unreferenced_room(self):

        room = CatalogService.create_room(name='Hall', capacity=20)

        CatalogService.delete_room(room.id)

        self.assertFalse(Seat.objects.filter(room_id=room.id).exists())


class ShowtimeLedgerTests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username='testuser', email='test@example.com', password='testpass123')
        self.movie = Movie.objects.create(
            title='Test Movie', genre='Drama', duration=148,
            price=Decimal('10.00'), release_date=timezone.localdate(),
        )
        self.room = CatalogService.create_room(name='Hall', capacity=20, room_type='imax')
        self.tomorrow = timezone.localdate() + timedelta(days=1)

    def test_price_from_room_type(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')

        self.assertEqual(showtime.price, Decimal('12.50'))
        self.assertEqual(showtime.total_seats, 20)
        self.assertEqual(showtime.available_seats, 20)

    def test_explicit_price(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00', price='9.99')
        self.assertEqual(showtime.price, Decimal('9.99'))

    def test_vip_room_multiplier(self):

        vip = CatalogService.create_room(name='Lounge', capacity=10, room_type='vip')
        showtime = ShowtimeLedger.create_showtime(self.movie.id, vip.id, self.tomorrow, '18:00')
        self.assertEqual(showtime.price, Decimal('13.00'))

    def test_slot_conflict(self):

        ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')

        with self.assertRaises(SlotConflict):
            ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')

    def test_inactive_movie_rejected(self):

        CatalogService.deactivate_movie(self.movie.id)

        with self.assertRaises(InvalidRequest):
            ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')

    def test_update_blocked_by_active_bookings(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        BookingService.create_booking(showtime.id, [self.room.seats.first().id], self.user)

        with self.assertRaises(HasActiveBookings):
            ShowtimeLedger.update_showtime(showtime.id, price='20.00')
        with self.assertRaises(HasActiveBookings):
            ShowtimeLedger.delete_showtime(showtime.id)

        showtime.refresh_from_db()
        self.assertEqual(showtime.price, Decimal('12.50'))

    def test_delete_after_cancellation(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        booking = BookingService.create_booking(showtime.id, [self.room.seats.first().id], self.user)
        BookingService.cancel_booking(booking.id, self.user, 'user')

        ShowtimeLedger.delete_showtime(showtime.id)

        self.assertFalse(Showtime.objects.filter(pk=showtime.pk).exists())

    def test_room_change_resets_counters(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        small = CatalogService.create_room(name='Studio', capacity=12)

        ShowtimeLedger.update_showtime(showtime.id, room=small.id)

        showtime.refresh_from_db()
        self.assertEqual(showtime.total_seats, 12)
        self.assertEqual(showtime.available_seats, 12)

    def test_move_to_inactive_room_rejected(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        closed = CatalogService.create_room(name='Studio', capacity=12, status='maintenance')

        with self.assertRaises(InvalidRequest):
            ShowtimeLedger.update_showtime(showtime.id, room=closed.id)

        showtime.refresh_from_db()
        self.assertEqual(showtime.room_id, self.room.id)

    def test_reschedule_into_taken_slot(self):

        ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '21:00')

        with self.assertRaises(SlotConflict):
            ShowtimeLedger.update_showtime(showtime.id, time='18:00')

    def test_list_hides_past_dates(self):

        yesterday = timezone.localdate() - timedelta(days=1)
        Showtime.objects.create(
            movie=self.movie, room=self.room, date=yesterday, time='18:00',
            price=Decimal('12.50'), available_seats=20, total_seats=20,
        )
        upcoming = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')

        self.assertEqual(list(ShowtimeLedger.list_showtimes()), [upcoming])


class ShowtimeApiTests(TestCase):

    def setUp(self):
        cache.clear()
        self.client = Client()
        self.user = User.objects.create_user(username='testuser', email='test@example.com', password='testpass123')
        self.admin = User.objects.create_user(username='admin', password='testpass123', is_staff=True)
        self.movie = Movie.objects.create(
            title='Test Movie', genre='Drama', duration=148,
            price=Decimal('10.00'), release_date=timezone.localdate(),
        )
        self.room = CatalogService.create_room(name='Hall', capacity=20)
        self.tomorrow = timezone.localdate() + timedelta(days=1)

    def post_showtime(self, time='18:00'):
        return self.client.post(
            '/api/showtimes/',
            data=json.dumps({
                'movie_id': self.movie.id,
                'room_id': self.room.id,
                'date': self.tomorrow.isoformat(),
                'time': time,
            }),
            content_type='application/json',
        )

    def test_create_requires_admin(self):

        self.assertEqual(self.post_showtime().status_code, 401)

        self.client.force_login(self.user)
        self.assertEqual(self.post_showtime().status_code, 403)

        self.client.force_login(self.admin)
        response = self.post_showtime()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['data']['showtime']['price'], '10.00')

    def test_slot_conflict_is_409(self):

        self.client.force_login(self.admin)
        self.post_showtime()

        response = self.post_showtime()

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['code'], 'slot_conflict')

    def test_list_showtimes(self):

        ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '21:00')

        response = self.client.get('/api/showtimes/', {'movieId': self.movie.id, 'limit': 1})

        data = response.json()['data']
        self.assertEqual(len(data['showtimes']), 1)
        self.assertEqual(data['pagination']['total'], 2)
        self.assertTrue(data['pagination']['hasNext'])

    def test_patch_with_active_bookings(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        BookingService.create_booking(showtime.id, [self.room.seats.first().id], self.user)
        self.client.force_login(self.admin)

        response = self.client.patch(
            f'/api/showtimes/{showtime.id}/',
            data=json.dumps({'price': '15.00'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'has_active_bookings')

    def test_seat_map_marks_booked_seats(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        seat = self.room.seats.first()
        BookingService.create_booking(showtime.id, [seat.id], self.user)

        response = self.client.get(f'/api/showtimes/{showtime.id}/seats/')

        self.assertEqual(response.status_code, 200)
        seats = {entry['id']: entry for entry in response.json()['data']['seats']}
        self.assertEqual(len(seats), 20)
        self.assertEqual(seats[seat.id]['status'], 'occupied')
        self.assertEqual(response.json()['data']['showtime']['available_seats'], 19)

    def test_seat_map_refreshes_after_booking(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        seat = self.room.seats.first()
        self.client.get(f'/api/showtimes/{showtime.id}/seats/')

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            BookingService.create_booking(showtime.id, [seat.id], self.user)
        # Run only the cache invalidation part of the post-commit work
        CacheInvalidator.invalidate_showtime_cache(showtime.id)

        response = self.client.get(f'/api/showtimes/{showtime.id}/seats/')
        seats = {entry['id']: entry for entry in response.json()['data']['seats']}
        self.assertEqual(seats[seat.id]['status'], 'occupied')
        self.assertEqual(len(callbacks), 1)

    def test_unknown_showtime_seats(self):

        response = self.client.get('/api/showtimes/999999/seats/')

        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.json()['success'])

    def test_non_integer_filter(self):

        response = self.client.get('/api/showtimes/', {'movieId': 'abc'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'invalid_request')


class CatalogAdminTests(TestCase):

    def setUp(self):
        cache.clear()
        self.client = Client()
        self.superuser = User.objects.create_superuser(username='root', email='root@example.com', password='testpass123')
        self.user = User.objects.create_user(username='testuser', email='test@example.com', password='testpass123')
        self.client.force_login(self.superuser)
        self.movie = Movie.objects.create(
            title='Test Movie', genre='Drama', duration=148,
            price=Decimal('10.00'), release_date=timezone.localdate(),
        )
        self.room = CatalogService.create_room(name='Hall', capacity=30, location='Floor 1')
        self.tomorrow = timezone.localdate() + timedelta(days=1)

    def showtime_form(self, **overrides):
        data = {
            'movie': self.movie.id,
            'room': self.room.id,
            'date': self.tomorrow.isoformat(),
            'time': '18:00',
            'price': '',
        }
        data.update(overrides)
        return data

    def room_form(self, **overrides):
        data = {
            'name': self.room.name,
            'capacity': self.room.capacity,
            'room_type': self.room.room_type,
            'status': self.room.status,
            'location': self.room.location,
            'seats-TOTAL_FORMS': '0',
            'seats-INITIAL_FORMS': '0',
            'seats-MIN_NUM_FORMS': '0',
            'seats-MAX_NUM_FORMS': '1000',
        }
        data.update(overrides)
        return data

    def test_add_showtime_derives_price_and_counters(self):

        response = self.client.post('/admin/movies/showtime/add/', self.showtime_form())

        self.assertEqual(response.status_code, 302)
        showtime = Showtime.objects.get()
        self.assertEqual(showtime.price, Decimal('10.00'))
        self.assertEqual(showtime.total_seats, 30)
        self.assertEqual(showtime.available_seats, 30)

    def test_add_showtime_for_inactive_movie(self):

        CatalogService.deactivate_movie(self.movie.id)

        response = self.client.post('/admin/movies/showtime/add/', self.showtime_form())

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'The movie is not active')
        self.assertFalse(Showtime.objects.exists())

    def test_change_showtime_room_resets_counters(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        bigger = CatalogService.create_room(name='Arena', capacity=100, location='Floor 2')

        response = self.client.post(
            f'/admin/movies/showtime/{showtime.id}/change/',
            self.showtime_form(room=bigger.id, price='10.00'),
        )

        self.assertEqual(response.status_code, 302)
        showtime.refresh_from_db()
        self.assertEqual(showtime.room_id, bigger.id)
        self.assertEqual(showtime.total_seats, 100)
        self.assertEqual(showtime.available_seats, 100)

    def test_change_room_capacity_regenerates_seats(self):

        response = self.client.post(f'/admin/movies/room/{self.room.id}/change/', self.room_form(capacity=40))

        self.assertEqual(response.status_code, 302)
        self.room.refresh_from_db()
        self.assertEqual(self.room.capacity, 40)
        self.assertEqual(self.room.seats.count(), 40)

    def test_change_room_capacity_refused_when_seats_booked(self):

        showtime = ShowtimeLedger.create_showtime(self.movie.id, self.room.id, self.tomorrow, '18:00')
        BookingService.create_booking(showtime.id, [self.room.seats.first().id], self.user)

        response = self.client.post(f'/admin/movies/room/{self.room.id}/change/', self.room_form(capacity=40))

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'capacity cannot change')
        self.assertNotContains(response, 'was changed successfully')
        self.room.refresh_from_db()
        self.assertEqual(self.room.capacity, 30)
        self.assertEqual(self.room.seats.count(), 30)
