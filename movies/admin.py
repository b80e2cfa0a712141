from django import forms
from django.contrib import admin
from .models import Movie
from .theater_models import Room, Seat, Showtime
from .services import CatalogService, ShowtimeLedger
from bookings.exceptions import BookingError


@admin.register(Movie)
class MovieAdmin(admin.ModelAdmin):
    list_display = ['title', 'genre', 'release_date', 'rating', 'duration_formatted', 'price', 'status']
    list_filter = ['status', 'genre', 'release_date']
    search_fields = ['title', 'genre']
    actions = ['deactivate_movies']

    fieldsets = [
        ('Basic Info', {
            'fields': ['title', 'genre', 'description', 'poster']
        }),
        ('Details', {
            'fields': ['release_date', 'duration', 'rating', 'price']
        }),
        ('Status', {
            'fields': ['status']
        }),
    ]

    def duration_formatted(self, obj):
        return obj.duration_formatted()
    duration_formatted.short_description = 'Duration'

    def has_delete_permission(self, request, obj=None):
        # Referenced movies are deactivated, not deleted
        if obj is not None and obj.showtimes.exists():
            return False
        return super().has_delete_permission(request, obj)

    @admin.action(description="Deactivate selected movies")
    def deactivate_movies(self, request, queryset):
        for movie in queryset:
            CatalogService.deactivate_movie(movie.id)
        self.message_user(request, f"{queryset.count()} movies deactivated.")


class SeatInline(admin.TabularInline):
    model = Seat
    extra = 0
    fields = ['row', 'number', 'seat_type', 'status']
    readonly_fields = ['row', 'number', 'seat_type']
    can_delete = False


class RoomAdminForm(forms.ModelForm):

    class Meta:
        model = Room
        fields = ['name', 'capacity', 'room_type', 'status', 'location']

    def clean_capacity(self):
        capacity = self.cleaned_data['capacity']
        # Instance still holds the stored capacity until _post_clean
        if self.instance.pk and capacity != self.instance.capacity and CatalogService.seats_in_use(self.instance.pk):
            raise forms.ValidationError('Seats of this room are referenced by bookings, capacity cannot change.')
        return capacity


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    form = RoomAdminForm
    list_display = ['name', 'room_type', 'capacity', 'status', 'location']
    list_filter = ['room_type', 'status', 'location']
    search_fields = ['name', 'location']
    inlines = [SeatInline]

    def save_model(self, request, obj, form, change):
        if not change:
            super().save_model(request, obj, form, change)
            CatalogService.generate_seats(obj)
            return

        if 'capacity' in form.changed_data:
            CatalogService.update_room(obj.pk, **{field: form.cleaned_data[field] for field in form.changed_data})
            return
        super().save_model(request, obj, form, change)

    def save_related(self, request, form, formsets, change):
        if change and 'capacity' in form.changed_data:
            # The seat inline was bound to seats that no longer exist
            form.save_m2m()
            for formset in formsets:
                formset.new_objects, formset.changed_objects, formset.deleted_objects = [], [], []
            return
        super().save_related(request, form, formsets, change)

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.showtimes.exists():
            return False
        return super().has_delete_permission(request, obj)


def ledger_changes(form):
    changes = {}
    for field in form.changed_data:
        value = form.cleaned_data.get(field)
        changes[field] = value.pk if field in ('movie', 'room') else value
    return changes


class ShowtimeAdminForm(forms.ModelForm):

    class Meta:
        model = Showtime
        fields = ['movie', 'room', 'date', 'time', 'price']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance.pk is None and 'price' in self.fields:
            self.fields['price'].required = False
            self.fields['price'].help_text = 'Leave empty to derive it from the movie price and room type.'

    def clean(self):
        cleaned_data = super().clean()
        try:
            if self.instance.pk is None:
                ShowtimeLedger.ensure_schedulable(cleaned_data.get('movie'), cleaned_data.get('room'))
            else:
                ShowtimeLedger.ensure_editable(self.instance.pk, self.changed_data)
                ShowtimeLedger.ensure_schedulable(
                    cleaned_data.get('movie') if 'movie' in self.changed_data else None,
                    cleaned_data.get('room') if 'room' in self.changed_data else None,
                )
        except BookingError as e:
            raise forms.ValidationError(e.message)
        return cleaned_data


@admin.register(Showtime)
class ShowtimeAdmin(admin.ModelAdmin):
    form = ShowtimeAdminForm
    list_display = ['movie', 'room', 'date', 'time', 'price', 'available_seats', 'total_seats']
    list_filter = ['date', 'room', 'movie']
    search_fields = ['movie__title', 'room__name']
    readonly_fields = ['available_seats', 'total_seats']

    def get_readonly_fields(self, request, obj=None):
        fields = list(super().get_readonly_fields(request, obj))
        if obj is not None and ShowtimeLedger.has_active_bookings(obj.pk):
            fields += ['room', 'date', 'time', 'price']
        return fields

    def save_model(self, request, obj, form, change):
        # Writes go through the ledger so counters, price and slot rules hold
        if not change:
            showtime = ShowtimeLedger.create_showtime(
                obj.movie_id, obj.room_id, obj.date, obj.time, price=form.cleaned_data.get('price')
            )
        else:
            changes = ledger_changes(form)
            if not changes:
                return
            showtime = ShowtimeLedger.update_showtime(obj.pk, **changes)

        for field in ('id', 'movie_id', 'room_id', 'price', 'available_seats', 'total_seats', 'created_at', 'updated_at'):
            setattr(obj, field, getattr(showtime, field))
        obj._state.adding = False

    def has_delete_permission(self, request, obj=None):
        if obj is not None and ShowtimeLedger.has_active_bookings(obj.pk):
            return False
        return super().has_delete_permission(request, obj)
