from django.contrib import admin, messages
from .models import Booking, BookingSeat
from .exceptions import BookingError
from .services import BookingService
from django.utils.html import format_html


class BookingSeatInline(admin.TabularInline):
    model = BookingSeat
    extra = 0
    fields = ['seat', 'price', 'is_active']
    readonly_fields = ['seat', 'price', 'is_active']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['transaction_id', 'user', 'showtime', 'total_price', 'status', 'purchase_date', 'payment_status']
    list_filter = ['status', 'purchase_date', 'showtime__movie']
    search_fields = ['transaction_id', 'user__username', 'customer_email', 'showtime__movie__title']
    actions = ['cancel_bookings', 'export_as_csv']
    inlines = [BookingSeatInline]

    # Bookings change only through the booking engine
    readonly_fields = [
        'transaction_id', 'user', 'showtime', 'total_price', 'status', 'payment_method',
        'customer_email', 'purchase_date', 'receipt_url', 'confirmation_email_sent',
        'cancelled_at', 'refund_amount',
    ]
    exclude = ['qr_code_data']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def payment_status(self, obj):
        colors = {
            'pending': 'warning',
            'confirmed': 'success',
            'cancelled': 'danger',
            'completed': 'secondary',
        }
        color = colors.get(obj.status, 'secondary')

        return format_html('<span class="badge bg-{}">{}</span>', color, obj.status)
    payment_status.short_description = 'Status'

    @admin.action(description="Cancel selected bookings")
    def cancel_bookings(self, request, queryset):

        cancelled = 0
        for booking in queryset:
            try:
                BookingService.cancel_booking(booking.id, request.user, 'admin')
                cancelled += 1
            except BookingError as e:
                self.message_user(request, f"{booking.transaction_id}: {e.message}", level=messages.WARNING)
        self.message_user(request, f'{cancelled} bookings cancelled successfully.')

    @admin.action(description="Export selected bookings to CSV")
    def export_as_csv(self, request, queryset):
        import csv
        from django.http import HttpResponse
        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = 'attachment; filename="selected_bookings.csv"'
        writer = csv.writer(response)
        writer.writerow(['Transaction ID', 'User', 'Movie', 'Amount', 'Status', 'Date'])

        for booking in queryset.select_related('user', 'showtime__movie'):
            writer.writerow([
                booking.transaction_id,
                booking.user.username,
                booking.showtime.movie.title,
                booking.total_price,
                booking.status,
                booking.purchase_date.strftime('%Y-%m-%d %H:%M')
            ])
        return response
