import logging
from . import azblob, s3, vfs

logger = logging.getLogger(__name__)

BACKENDS = (s3, azblob, vfs)


def register_drivers(registry) -> None:
    """
    Registers the constructor of every backend with the given registry.

    The registry belongs to the backup core. It must provide
    `register_driver(kind, init_func)` and is expected to call `init_func(dest_url)`
    the first time a destination of that kind is used.
    """
    for backend in BACKENDS:
        logger.info(f"Driver registry: registering backend '{backend.KIND}'")
        backend.register(registry)
