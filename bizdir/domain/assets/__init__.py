"""This module keeps uploaded images and the records that reference them in step."""
from .entities import ImageAsset, ImageFile, ImageLimits, StoredObject
from .object_store import ObjectStore
from .coordinator import AssetLifecycleCoordinator
