import pytest

from crawlgate.domain.entities import UsageKey
from crawlgate.domain.errors import ConfigurationError
from crawlgate.domain.values.tenancy import USAGE_LIMIT_FIELDS, check_usage_limit_fields


def test_every_usage_key_has_a_limit_field():
    check_usage_limit_fields()


def test_missing_usage_key_is_a_configuration_error():
    table = {k: v for k, v in USAGE_LIMIT_FIELDS.items() if k != UsageKey.current_workers}

    with pytest.raises(ConfigurationError) as exc_info:
        check_usage_limit_fields(table)

    assert exc_info.value.errors == ["No limit field for usage key current_workers"]


def test_unknown_limit_field_is_a_configuration_error():
    table = {**USAGE_LIMIT_FIELDS, UsageKey.current_pages: "max_pages"}

    with pytest.raises(ConfigurationError) as exc_info:
        check_usage_limit_fields(table)

    assert exc_info.value.errors == ["Unknown limit field max_pages"]
