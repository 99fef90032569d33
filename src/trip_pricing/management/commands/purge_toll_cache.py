from __future__ import annotations

from typing import Any

from django.core.management.base import BaseCommand

from trip_pricing.services.tolls import cleanup_expired_toll_cache


class Command(BaseCommand):
    help = "Delete expired toll cache entries."

    def handle(self, *_: Any, **__: Any) -> None:
        deleted = cleanup_expired_toll_cache()
        if deleted == 0:
            self.stdout.write(self.style.WARNING("No expired toll cache entries"))
            return

        self.stdout.write(self.style.SUCCESS(f"Purged {deleted} expired toll cache entries"))
