from __future__ import annotations

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from trip_pricing.models import TollCacheEntry


def _entry(suffix: str, expires_in: timedelta) -> TollCacheEntry:
    now = timezone.now()
    return TollCacheEntry.objects.create(
        origin_hash=f"origin-{suffix}",
        destination_hash=f"dest-{suffix}",
        toll_amount="12.40",
        fetched_at=now - timedelta(hours=30),
        expires_at=now + expires_in,
    )


@pytest.mark.django_db
def test_purge_toll_cache_deletes_only_expired_rows() -> None:
    _entry("old", timedelta(hours=-6))
    fresh = _entry("new", timedelta(hours=6))
    out = StringIO()

    call_command("purge_toll_cache", stdout=out)

    assert "Purged 1 expired toll cache entries" in out.getvalue()
    assert list(TollCacheEntry.objects.values_list("pk", flat=True)) == [fresh.pk]


@pytest.mark.django_db
def test_purge_toll_cache_with_nothing_expired() -> None:
    _entry("new", timedelta(hours=6))
    out = StringIO()

    call_command("purge_toll_cache", stdout=out)

    assert "No expired toll cache entries" in out.getvalue()
    assert TollCacheEntry.objects.count() == 1
