from django.core.management.base import BaseCommand
from django.utils import timezone

from clinic.services import cache


class Command(BaseCommand):
    help = "Drop every cached API response and broadcast a WebSocket refresh event."

    def handle(self, *args, **options):
        paths = cache.invalidate_paths(cache.RESOURCE_PATHS)
        self.stdout.write(self.style.SUCCESS(f"Refreshed {len(paths)} paths at {timezone.now()}"))
