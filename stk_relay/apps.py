from django.apps import AppConfig
from django.conf import settings


class StkRelayConfig(AppConfig):
    name = "stk_relay"
    verbose_name = "M-Pesa STK relay"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        from .tenants import TenantRegistry

        # Built once; views read it by reference. Bad config stops startup here.
        self.registry = TenantRegistry.from_settings(settings)
