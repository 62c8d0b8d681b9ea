"""URL configuration for the linkcurator app.

All routes are JSON endpoints under ``api/``. The ``app_name`` allows the
project URL configuration and the throttle middleware to refer to routes by
namespaced name.
"""

from django.urls import path

from . import views

app_name = 'linkcurator'

urlpatterns = [
    path('crawl-sessions/<int:session_id>/raw-pages/', views.raw_pages, name='raw_pages'),
    path('raw-pages/', views.update_raw_pages, name='update_raw_pages'),
    path('raw-pages/exclusions/', views.exclude_pages, name='exclude_pages'),
    path('raw-pages/inclusions/', views.include_pages, name='include_pages'),
    path('crawl-sessions/<int:session_id>/filter-blocks/', views.filter_blocks, name='filter_blocks'),
    path(
        'crawl-sessions/<int:session_id>/filter-blocks/preview/',
        views.preview_filter_block,
        name='preview_filter_block',
    ),
    path('filter-blocks/<int:block_id>/', views.filter_block_detail, name='filter_block_detail'),
    path('filter-presets/', views.filter_presets, name='filter_presets'),
    path('embeddings/', views.embeddings, name='embeddings'),
    path('embeddings/compatibility/', views.embeddings_compatibility, name='embeddings_compatibility'),
    path('embeddings/diagnose/', views.embeddings_diagnose, name='embeddings_diagnose'),
    path('extract-anchors/', views.extract_anchors, name='extract_anchors'),
    path('suggestions/', views.suggestions, name='suggestions'),
    path('analyze/', views.analyze, name='analyze'),
]
