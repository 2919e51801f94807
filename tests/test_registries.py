import pytest

from downloader.config.settings import ItemCheckerType, Settings
from downloader.v1.core.registries import (
    ItemCheckerRegistry,
    Registry,
    item_checker_registry,
)
from downloader.v1.jobs.checkers import MockItemChecker, S3ItemChecker
from downloader.v1.jobs.registry_init import build_item_checker, register_item_checkers


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    # Test empty registry
    assert registry.list() == []

    # Test register and get
    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.list() == ["test_impl"]

    # Test KeyError for missing implementation
    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_freeze():
    """Test that frozen registries reject new registrations."""
    registry = Registry[str]("Test")
    registry.register("before", "value")
    registry.freeze()

    assert registry.is_frozen()
    assert registry.get("before") == "value"
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("after", "value")


def test_item_checker_registry_name():
    registry = ItemCheckerRegistry()
    with pytest.raises(KeyError, match="No itemchecker implementation registered"):
        registry.get("ftp")


def test_builtin_checkers_registered():
    assert {ItemCheckerType.MOCK.value, ItemCheckerType.S3.value} <= set(
        item_checker_registry.list()
    )


def test_register_item_checkers_is_idempotent():
    before = item_checker_registry.list()
    register_item_checkers()
    assert item_checker_registry.list() == before


def test_build_mock_checker():
    checker = build_item_checker(Settings(mock_divisor=3))

    assert isinstance(checker, MockItemChecker)
    assert checker.divisor == 3


def test_build_s3_checker():
    checker = build_item_checker(
        Settings(
            item_checker=ItemCheckerType.S3,
            s3_bucket_name="downloads",
            s3_access_key_id="test",
            s3_secret_access_key="test",
        )
    )

    assert isinstance(checker, S3ItemChecker)
