# clients/apps.py

"""
CLIENTS APP CONFIG

Client registry boundary:
- Fiado (store credit) sales must name a client
- Client discount_percent is read once, at checkout
"""

from django.apps import AppConfig


class ClientsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clients"
    verbose_name = "Clients"
