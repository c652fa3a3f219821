from .catalog import CatalogService  # noqa: F401
from .lending import LendingService  # noqa: F401
