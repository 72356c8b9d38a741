"""Django app configuration for Toolman."""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class ToolmanConfig(AppConfig):
    """Configuration for Toolman app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "toolman"
    verbose_name = _("Tool Tracking")
