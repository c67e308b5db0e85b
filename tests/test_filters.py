"""Tests for operation filtering."""

from api_tool_adapter.filters import OperationFilter
from api_tool_adapter.models import OperationInfo


def _operations(*paths):
    return {
        f"op{i}": OperationInfo(operation_id=f"op{i}", summary="", path=path, method="GET")
        for i, path in enumerate(paths)
    }


class TestOperationFilter:
    """Test the four filtering stages."""

    def test_no_filters_keep_everything(self):
        assert OperationFilter().allows("/anything")

    def test_excluded_substring(self):
        operation_filter = OperationFilter(excluded_paths=("/admin",))
        assert not operation_filter.allows("/admin/users")
        assert operation_filter.allows("/users")

    def test_matching_is_case_insensitive(self):
        assert not OperationFilter(excluded_paths=("/ADMIN",)).allows("/admin/users")
        assert OperationFilter(included_paths=("/PETS",)).allows("/pets")

    def test_included_substring(self):
        operation_filter = OperationFilter(included_paths=("/pets",))
        assert operation_filter.allows("/pets/{id}")
        assert not operation_filter.allows("/stores")

    def test_exclusion_applies_before_inclusion(self):
        """An excluded prefix drops a path even when a longer include matches it."""
        operation_filter = OperationFilter(excluded_paths=("/pets",), included_paths=("/pets/{id}",))
        assert not operation_filter.allows("/pets/{id}")

    def test_predicates(self):
        operation_filter = OperationFilter(
            exclude_predicate=lambda path: path.endswith("/internal"),
            include_predicate=lambda path: path.startswith("/v1"),
        )
        assert operation_filter.allows("/v1/pets")
        assert not operation_filter.allows("/v1/internal")
        assert not operation_filter.allows("/v2/pets")

    def test_apply(self):
        kept = OperationFilter(excluded_paths=("/admin",)).apply(_operations("/pets", "/admin"))
        assert [info.path for info in kept.values()] == ["/pets"]
