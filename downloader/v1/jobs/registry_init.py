"""
Item checker registry initialization.

Registers the available checker backends with the global checker registry.
"""

import logging

from downloader.config.settings import ItemCheckerType, Settings
from downloader.v1.core.registries import item_checker_registry
from downloader.v1.jobs.checkers import ItemChecker, MockItemChecker, S3ItemChecker

logger = logging.getLogger(__name__)


def _mock_checker(settings: Settings) -> MockItemChecker:
    return MockItemChecker(
        divisor=settings.mock_divisor, base_url=settings.download_base_url
    )


def _s3_checker(settings: Settings) -> S3ItemChecker:
    return S3ItemChecker(
        bucket=settings.s3_bucket_name,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
        force_path_style=settings.s3_force_path_style,
        url_expires_in=settings.download_url_expires_s,
    )


def register_item_checkers() -> None:
    """Register all item checker backends with the checker registry."""
    for name, factory in (
        (ItemCheckerType.MOCK.value, _mock_checker),
        (ItemCheckerType.S3.value, _s3_checker),
    ):
        if name not in item_checker_registry.list():
            item_checker_registry.register(name, factory)

    logger.info(
        "Item checkers registered",
        extra={"registered_checkers": item_checker_registry.list()},
    )


def build_item_checker(settings: Settings) -> ItemChecker:
    """Create the checker selected by ``settings.item_checker``."""
    factory = item_checker_registry.get(settings.item_checker.value)
    return factory(settings)


# Auto-register checkers when module is imported
register_item_checkers()
