from django.contrib import admin

from trip_pricing.models import TollCacheEntry


@admin.register(TollCacheEntry)
class TollCacheEntryAdmin(admin.ModelAdmin):
    list_display = (
        "origin_hash",
        "destination_hash",
        "toll_amount",
        "currency",
        "source",
        "fetched_at",
        "expires_at",
    )
    list_filter = ("source", "currency")
    search_fields = ("origin_hash", "destination_hash")
    ordering = ("-fetched_at",)
