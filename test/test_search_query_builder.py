"""
Tests for search filter interpretation.
"""

import pydantic
import pytest

from numberops.phone_numbers.search import (
    SearchFilter,
    build_search_query,
    interpret_search_token,
)
from numberops.telephony.interface import Capability, NumberType


class TestSearchFilter:
    def test_country_is_normalized(self) -> None:
        assert SearchFilter(country=" us ").country == "US"

    def test_unknown_but_well_formed_country_is_accepted(self) -> None:
        # The provider decides whether it sells numbers there.
        assert SearchFilter(country="XX").country == "XX"

    @pytest.mark.parametrize("country", ["USA", "U", "1A", ""])
    def test_malformed_country_rejected(self, country: str) -> None:
        with pytest.raises(pydantic.ValidationError):
            SearchFilter(country=country)

    @pytest.mark.parametrize("limit", [0, 101])
    def test_limit_bounds(self, limit: int) -> None:
        with pytest.raises(pydantic.ValidationError):
            SearchFilter(country="US", limit=limit)

    def test_capabilities_from_flags(self) -> None:
        f = SearchFilter(country="US", voice_enabled=True, sms_enabled=True)
        assert f.capabilities == frozenset({Capability.VOICE, Capability.SMS})


class TestInterpretSearchToken:
    @pytest.mark.parametrize(
        ("token", "country", "expected"),
        [
            ("305", "US", {"area_code": "305"}),
            ("fl", "US", {"in_region": "FL"}),
            ("Miami, FL", "US", {"in_locality": "Miami", "in_region": "FL"}),
            ("Miami, Florida", "US", {"in_locality": "Miami", "in_region": "FL"}),
            ("Miami", "US", {"in_locality": "Miami", "in_region": "FL"}),
            ("Florida", "US", {"in_region": "FL"}),
            ("Springfield", "US", {"in_locality": "Springfield"}),
            ("Toronto", "CA", {"in_locality": "Toronto", "in_region": "ON"}),
            ("604", "CA", {"area_code": "604"}),
            ("555*12", "US", {"contains": "555*12"}),
            ("London", "GB", {"in_locality": "London"}),
            ("207", "GB", {"contains": "207"}),
        ],
    )
    def test_token_shapes(self, token: str, country: str, expected: dict[str, str]) -> None:
        assert interpret_search_token(token, country) == expected


class TestBuildSearchQuery:
    def test_blank_fields_are_omitted(self) -> None:
        query = build_search_query(
            SearchFilter(country="US", search="   ", starts_with="", ends_with=" ", area_code="")
        )

        assert query.area_code is None
        assert query.contains is None
        assert query.in_region is None
        assert query.in_locality is None
        assert query.starts_with is None
        assert query.ends_with is None
        assert query.capabilities == frozenset()

    def test_defaults(self) -> None:
        query = build_search_query(SearchFilter(country="US"))

        assert query.country == "US"
        assert query.number_type == NumberType.LOCAL
        assert query.limit == 20
        assert query.include_beta is False

    def test_explicit_area_code_wins_over_token(self) -> None:
        query = build_search_query(SearchFilter(country="US", search="305", area_code="(415)"))
        assert query.area_code == "415"

    def test_area_code_ignored_outside_nanp(self) -> None:
        query = build_search_query(SearchFilter(country="GB", area_code="20"))
        assert query.area_code is None

    def test_fragments_keep_digits_only(self) -> None:
        query = build_search_query(
            SearchFilter(country="US", starts_with="(555)", ends_with="-4567")
        )
        assert query.starts_with == "555"
        assert query.ends_with == "4567"

    def test_city_with_region(self) -> None:
        query = build_search_query(
            SearchFilter(country="US", search="Miami, FL", voice_enabled=True, limit=5)
        )

        assert query.in_locality == "Miami"
        assert query.in_region == "FL"
        assert query.capabilities == frozenset({Capability.VOICE})
        assert query.limit == 5
