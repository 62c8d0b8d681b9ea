from django.apps import AppConfig


class LinkcuratorConfig(AppConfig):
    """Configuration for the linkcurator Django app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'linkcurator'
