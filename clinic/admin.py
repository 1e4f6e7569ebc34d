"""
Django admin registrations for the clinic models.

Clinical records are protected from deletion at the database level, so
the admin is mostly useful for inspection and manual corrections during
development.  API keys are shown by name only; their hashes are
read-only.
"""

from django.contrib import admin

from .models import (
    ActivityLog,
    ApiKey,
    Appointment,
    BirthdayWish,
    CheckIn,
    Consultation,
    MedicalAidClaim,
    MedicalAttachment,
    Patient,
    Payment,
    QueueEntry,
    QueueTransition,
    User,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('email', 'name', 'role', 'is_active', 'created_at')
    list_filter = ('role', 'is_active')
    search_fields = ('email', 'name')
    exclude = ('password',)


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('last_name', 'first_name', 'id_number', 'phone', 'medical_aid_scheme', 'created_at')
    search_fields = ('first_name', 'last_name', 'id_number', 'phone')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('patient', 'doctor', 'appointment_date', 'status')
    list_filter = ('status', 'doctor')


@admin.register(CheckIn)
class CheckInAdmin(admin.ModelAdmin):
    list_display = ('patient', 'check_in_time', 'payment_method', 'is_walk_in')
    list_filter = ('payment_method', 'is_walk_in')


class QueueTransitionInline(admin.TabularInline):
    model = QueueTransition
    extra = 0
    readonly_fields = ('from_status', 'to_status', 'operator', 'timestamp')


@admin.register(QueueEntry)
class QueueEntryAdmin(admin.ModelAdmin):
    list_display = ('patient', 'doctor', 'status', 'priority', 'entered_at')
    list_filter = ('status', 'doctor')
    inlines = [QueueTransitionInline]


@admin.register(Consultation)
class ConsultationAdmin(admin.ModelAdmin):
    list_display = ('patient', 'doctor', 'consultation_date')
    search_fields = ('patient__last_name', 'diagnosis')


admin.site.register(MedicalAttachment)


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('patient', 'amount', 'payment_method', 'payment_date')
    list_filter = ('payment_method',)


@admin.register(MedicalAidClaim)
class MedicalAidClaimAdmin(admin.ModelAdmin):
    list_display = ('patient', 'status', 'claim_amount', 'submitted_at', 'approved_at')
    list_filter = ('status',)


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'user', 'action', 'details')
    list_filter = ('action',)


@admin.register(ApiKey)
class ApiKeyAdmin(admin.ModelAdmin):
    list_display = ('name', 'user', 'is_active', 'last_used_at', 'created_at')
    readonly_fields = ('key_hash',)


admin.site.register(BirthdayWish)
