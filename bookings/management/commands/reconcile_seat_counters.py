from django.core.management.base import BaseCommand, CommandError
from bookings.exceptions import NotFound
from bookings.services import BookingService
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Compare showtime seat counters with active booked seats and optionally repair drift'

    def add_arguments(self, parser):
        parser.add_argument('--fix', action='store_true', help='Reset drifted counters to the recomputed value')
        parser.add_argument('--showtime', type=int, help='Only check this showtime id')

    def handle(self, *args, **options):
        fix = options['fix']

        if options.get('showtime'):
            try:
                report = BookingService.reconcile_showtime(options['showtime'], fix=fix)
            except NotFound:
                raise CommandError(f"Showtime {options['showtime']} not found")
            drifted = [report] if report['drift'] else []
        else:
            drifted = BookingService.reconcile_all(fix=fix)

        if not drifted:
            self.stdout.write(self.style.SUCCESS('✅ All seat counters match booked seats'))
            return

        self.stdout.write(
            self.style.WARNING(f'⚠️ Found {len(drifted)} showtimes with seat counter drift')
        )

        for report in drifted:
            line = (
                f"  Showtime {report['showtime_id']} | available {report['available_seats']} | "
                f"expected {report['expected_available_seats']} | drift {report['drift']:+d}"
            )
            if report['fixed']:
                self.stdout.write(self.style.SUCCESS(f'  ✓{line} | fixed'))
            elif fix:
                self.stdout.write(self.style.ERROR(f'  ✗{line} | not fixable'))
            else:
                self.stdout.write(line)

        if not fix:
            self.stdout.write('Run again with --fix to repair the counters.')
