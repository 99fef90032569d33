from __future__ import annotations

from django.db import models


class TollCacheEntry(models.Model):
    objects = models.Manager["TollCacheEntry"]()

    class Source(models.TextChoices):
        GOOGLE_API = "GOOGLE_API", "Google Routes API"
        ESTIMATE = "ESTIMATE", "Estimate"

    # 16-char digests of coordinates rounded to 4 decimals
    origin_hash = models.CharField(max_length=16)
    destination_hash = models.CharField(max_length=16)

    toll_amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="EUR")
    source = models.CharField(max_length=16, choices=Source.choices, default=Source.GOOGLE_API)
    encoded_polyline = models.TextField(null=True, blank=True)

    fetched_at = models.DateTimeField()
    expires_at = models.DateTimeField()

    class Meta:
        ordering = ("-fetched_at",)
        constraints = (
            models.UniqueConstraint(
                fields=["origin_hash", "destination_hash"], name="unique_toll_cache_route"
            ),
        )
        indexes = (models.Index(fields=["expires_at"], name="toll_cache_expires_at_idx"),)

    def __str__(self) -> str:
        return f"{self.origin_hash} -> {self.destination_hash} ({self.toll_amount} {self.currency})"
