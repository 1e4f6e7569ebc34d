import os

from django.core.management.base import BaseCommand

from clinic.models import Role, User

DEMO_SET = [
    ("admin@clinic.local", "Clinic Admin", Role.ADMIN),
    ("staff@clinic.local", "Front Desk", Role.STAFF),
    ("doctor@clinic.local", "Dr Demo", Role.DOCTOR),
]


class Command(BaseCommand):
    help = "Ensure one demo account per role exists with a known password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--password",
            default=os.getenv("DEMO_PASSWORD", "clinic-demo-1"),
            help="Password to set on every demo account (default: $DEMO_PASSWORD).",
        )

    def handle(self, *args, **opts):
        password = opts["password"]
        for email, name, role in DEMO_SET:
            u, created = User.objects.get_or_create(email=email, defaults={"name": name, "role": role})
            # re-align role and activation on every run
            u.role = role
            u.is_active = True
            u.set_password(password)
            u.save()
            state = "created" if created else "reset"
            self.stdout.write(self.style.SUCCESS(f"{state}: {email} ({role})"))
        self.stdout.write(self.style.SUCCESS("All demo users ensured."))
