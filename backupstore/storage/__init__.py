from .azblob import AzureBlobDriver
from .base import ObjectStoreDriver
from .factory import register_drivers
from .s3 import S3Driver
from .vfs import VfsDriver

__all__ = ['AzureBlobDriver', 'ObjectStoreDriver', 'S3Driver', 'VfsDriver', 'register_drivers']
