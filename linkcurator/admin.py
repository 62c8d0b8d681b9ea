from django.contrib import admin

from .models import CrawlSession, FilterBlock, PageEmbedding, PageExclusion, RawPage


@admin.register(CrawlSession)
class CrawlSessionAdmin(admin.ModelAdmin):
    list_display = ('name', 'base_url', 'created_at')
    search_fields = ('name', 'base_url')


@admin.register(RawPage)
class RawPageAdmin(admin.ModelAdmin):
    list_display = ('url', 'session', 'title', 'status_code', 'excluded', 'filtered_reason', 'crawled_at')
    list_filter = ('session', 'excluded')
    search_fields = ('url', 'title', 'h1')
    # Eligibility changes go through the filter services so memberships stay in sync.
    readonly_fields = ('excluded', 'filtered_reason')


@admin.register(FilterBlock)
class FilterBlockAdmin(admin.ModelAdmin):
    list_display = ('name', 'session', 'color', 'match_count', 'created_at')
    list_filter = ('session',)
    readonly_fields = ('match_count',)


@admin.register(PageExclusion)
class PageExclusionAdmin(admin.ModelAdmin):
    list_display = ('page', 'block', 'created_at')
    list_filter = ('block',)


@admin.register(PageEmbedding)
class PageEmbeddingAdmin(admin.ModelAdmin):
    list_display = ('page', 'model', 'dimensions', 'generated_at')
    list_filter = ('model', 'dimensions')
    exclude = ('vector',)
