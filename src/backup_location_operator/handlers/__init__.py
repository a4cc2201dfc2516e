"""Handler modules for CRD resources."""

# Import handlers to register them - all handlers register themselves via @kopf decorators
from . import cloudstorage  # noqa: F401
from . import dataprotection  # noqa: F401
