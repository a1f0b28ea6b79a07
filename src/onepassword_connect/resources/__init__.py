"""Per-resource request builders layered on ``RequestPipeline``."""

from onepassword_connect.resources.activity import ActivityClient
from onepassword_connect.resources.files import FilesClient
from onepassword_connect.resources.health import HealthClient
from onepassword_connect.resources.items import ItemsClient
from onepassword_connect.resources.vaults import VaultsClient

__all__ = [
    "ActivityClient",
    "FilesClient",
    "HealthClient",
    "ItemsClient",
    "VaultsClient",
]
