"""Database models for the linkcurator app.

The app stores crawl sessions and the raw pages crawled for them. Operators
exclude pages through filter blocks or by hand; each exclusion source is
recorded as a ``PageExclusion`` row so retracting one block never re-includes
a page another source still excludes. Eligible pages get one embedding each.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from .engine.filters import parse_criteria
from .engine.types import FilterRule, PageView


class CrawlSession(models.Model):
    """One crawl of one site; raw pages belong to exactly one session."""

    name = models.CharField(max_length=255)
    base_url = models.URLField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.name


class RawPage(models.Model):
    """A crawled URL. ``excluded`` is the single source of truth for eligibility."""

    session = models.ForeignKey(CrawlSession, on_delete=models.CASCADE, related_name='pages')
    url = models.URLField(max_length=2048)
    title = models.CharField(max_length=500, blank=True)
    h1 = models.CharField(max_length=500, blank=True)
    meta_description = models.TextField(blank=True)
    content = models.TextField(blank=True)
    status_code = models.PositiveSmallIntegerField(null=True, blank=True)
    excluded = models.BooleanField(default=False, db_index=True)
    filtered_reason = models.CharField(max_length=255, blank=True)
    crawled_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-crawled_at', '-id']

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.url

    def to_view(self) -> PageView:
        return PageView(
            id=self.pk,
            url=self.url,
            title=self.title,
            h1=self.h1,
            meta_description=self.meta_description,
            content=self.content,
            status_code=self.status_code,
            excluded=self.excluded,
            crawled_at=self.crawled_at.isoformat() if self.crawled_at else None,
        )


class FilterBlock(models.Model):
    """An operator-defined exclusion rule made of OR-combined criteria."""

    session = models.ForeignKey(CrawlSession, on_delete=models.CASCADE, related_name='filter_blocks')
    name = models.CharField(max_length=255)
    description = models.CharField(max_length=500, blank=True)
    color = models.CharField(max_length=32, default='red')
    criteria = models.JSONField(default=list)
    match_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.name

    def to_rule(self) -> FilterRule:
        return FilterRule(
            name=self.name,
            criteria=parse_criteria(self.criteria),
            description=self.description,
            color=self.color,
        )


class PageExclusion(models.Model):
    """Records one reason a page is excluded. ``block`` is null for manual exclusions."""

    page = models.ForeignKey(RawPage, on_delete=models.CASCADE, related_name='exclusions')
    block = models.ForeignKey(
        FilterBlock,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='exclusions',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['page', 'block'], name='unique_page_exclusion_source'),
        ]

    def __str__(self) -> str:  # pragma: no cover - convenience display
        source = self.block.name if self.block else 'manual'
        return f"{self.page} · {source}"


class PageEmbedding(models.Model):
    """Vector for one page, generated while the page was eligible."""

    page = models.OneToOneField(RawPage, on_delete=models.CASCADE, related_name='embedding')
    vector = models.JSONField(default=list)
    dimensions = models.PositiveIntegerField(default=0)
    model = models.CharField(max_length=100)
    generated_at = models.DateTimeField(default=timezone.now)

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f"{self.page} · {self.model} ({self.dimensions}d)"
