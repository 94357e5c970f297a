import json
import logging
from dataclasses import dataclass
from types import MappingProxyType

from django.core.exceptions import ImproperlyConfigured

from .exceptions import InvalidTenant

logger = logging.getLogger(__name__)

BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}

REQUIRED_FIELDS = ("consumer_key", "consumer_secret", "passkey", "shortcode", "callback_url")


@dataclass(frozen=True)
class TenantConfig:
    """Daraja credentials and push defaults for one project."""

    id: str
    consumer_key: str
    consumer_secret: str
    passkey: str
    shortcode: str
    callback_url: str
    environment: str = "production"
    account_reference: str = "VEYO_TXN"
    transaction_desc: str = "Veyo Payment"

    @property
    def base_url(self):
        return BASE_URLS[self.environment]

    def __repr__(self):
        # Keep credentials out of tracebacks and log lines.
        return f"TenantConfig(id={self.id!r}, shortcode={self.shortcode!r}, environment={self.environment!r})"

    @classmethod
    def from_dict(cls, tenant_id, data):
        missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
        if missing:
            raise ImproperlyConfigured(
                f"M-Pesa tenant '{tenant_id}' is missing: {', '.join(missing)}"
            )

        environment = str(data.get("environment") or "production").lower()
        if environment not in BASE_URLS:
            raise ImproperlyConfigured(
                f"M-Pesa tenant '{tenant_id}' has environment '{environment}', "
                "expected 'sandbox' or 'production'"
            )

        fields = {
            "consumer_key": data["consumer_key"],
            "consumer_secret": data["consumer_secret"],
            "passkey": data["passkey"],
            "shortcode": str(data["shortcode"]),
            "callback_url": data["callback_url"],
            "environment": environment,
        }
        if data.get("account_reference"):
            fields["account_reference"] = data["account_reference"]
        if data.get("transaction_desc"):
            fields["transaction_desc"] = data["transaction_desc"]
        return cls(id=tenant_id, **fields)


class TenantRegistry:
    """
    Immutable lookup table of tenants, built once at startup.

    `resolve()` is a pure lookup; an unknown id raises InvalidTenant,
    which the views turn into a 400.
    """

    def __init__(self, tenants, default_id):
        self._tenants = MappingProxyType(dict(tenants))
        if default_id not in self._tenants:
            raise ImproperlyConfigured(f"Default M-Pesa tenant '{default_id}' is not configured")
        self.default_id = default_id

    def __contains__(self, tenant_id):
        return tenant_id in self._tenants

    def __len__(self):
        return len(self._tenants)

    def resolve(self, tenant_id):
        try:
            return self._tenants[tenant_id]
        except (KeyError, TypeError):
            raise InvalidTenant(tenant_id) from None

    @property
    def default(self):
        return self._tenants[self.default_id]

    @classmethod
    def from_settings(cls, settings):
        default_id = settings.MPESA_DEFAULT_TENANT
        tenants = {default_id: TenantConfig.from_dict(default_id, settings.MPESA_CREDENTIALS)}

        path = getattr(settings, "MPESA_TENANTS_FILE", "")
        if path:
            for tenant_id, data in load_tenants_file(path).items():
                if tenant_id in tenants:
                    logger.warning(f"Tenant '{tenant_id}' in {path} overrides the environment tenant")
                tenants[tenant_id] = TenantConfig.from_dict(tenant_id, data)

        registry = cls(tenants, default_id)
        for tenant in tenants.values():
            _warn_unreachable_callback(tenant)
        logger.info(f"Loaded {len(registry)} M-Pesa tenant(s); default is '{default_id}'")
        return registry


def load_tenants_file(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ImproperlyConfigured(f"Could not read M-Pesa tenants file {path}: {e}") from e

    if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
        raise ImproperlyConfigured(
            f"M-Pesa tenants file {path} must map project IDs to credential objects"
        )
    return data


def _warn_unreachable_callback(tenant):
    if tenant.environment == "sandbox" and "localhost" in tenant.callback_url:
        logger.warning(
            f"Callback URL for tenant '{tenant.id}' is localhost. "
            "Sandbox callbacks need a public tunnel such as ngrok."
        )
