"""
Convo Backend — Query-String Codec Tests
=========================================

What we test:
    ✅ Only template keys survive, coerced to the template's types
    ✅ Lists split on commas, empty items dropped
    ✅ Uncoercible values are omitted; the last occurrence wins
    ✅ URLs are rebuilt with None values skipped
"""

import pytest

from convo.core.querystring import TEMPLATES, parse, to_url
from convo.exceptions import QueryStringError

PROFILE = TEMPLATES["UserProfile"]


class TestParse:
    def test_keeps_only_template_keys(self):
        query = parse("/api/profiles?page=2&size=5&admin=true", PROFILE)
        assert query == {"page": 2, "size": 5}

    def test_full_url_and_bare_query_string(self):
        assert parse("http://test/api/profiles?page=3", PROFILE) == {"page": 3}
        assert parse("?page=3", PROFILE) == {"page": 3}
        assert parse("page=3", PROFILE) == {"page": 3}

    def test_integer_that_does_not_parse_is_dropped(self):
        assert parse("?page=abc&size=10", PROFILE) == {"size": 10}

    def test_strings_are_kept_as_is(self):
        query = parse("?search=ann%20lee&search_precise=ann", PROFILE)
        assert query == {"search": "ann lee", "search_precise": "ann"}

    def test_lists_are_comma_separated(self):
        query = parse("?categories=rec_a,rec_b,,rec_c", PROFILE)
        assert query == {"categories": ["rec_a", "rec_b", "rec_c"]}

    def test_empty_list_is_omitted(self):
        assert parse("?categories=,", PROFILE) == {}

    def test_last_occurrence_wins(self):
        assert parse("?page=1&page=4", PROFILE) == {"page": 4}
        assert parse("?page=1&page=x", PROFILE) == {}

    def test_mapping_source(self):
        assert parse({"page": "2", "other": "1"}, PROFILE) == {"page": 2}

    def test_boolean_template(self):
        template = {"archived": False}
        assert parse("?archived=true", template) == {"archived": True}
        assert parse("?archived=yes", template) == {"archived": False}

    def test_integer_list_template(self):
        template = {"ids": [0]}
        assert parse("?ids=1,x,3", template) == {"ids": [1, 3]}


class TestToUrl:
    def test_builds_url_on_base(self):
        url = to_url({"page": 2, "search": "ann"}, "http://test/api/profiles")
        assert url == "http://test/api/profiles?page=2&search=ann"

    def test_lists_are_joined_and_encoded(self):
        url = to_url({"categories": ["rec_a", "rec_b"]}, "http://test/api/profiles")
        assert url == "http://test/api/profiles?categories=rec_a%2Crec_b"

    def test_none_values_and_lists_with_none_are_skipped(self):
        url = to_url({"page": None, "size": 5, "categories": ["rec_a", None]}, "/x")
        assert url == "/x?size=5"

    def test_empty_base_returns_query_only(self):
        assert to_url({"page": 1}, "") == "?page=1"

    def test_default_base_is_server_domain(self):
        assert to_url({"page": 1}) == "http://test?page=1"

    def test_parse_reads_back_what_to_url_wrote(self):
        query = {"page": 3, "size": 10, "categories": ["rec_a", "rec_b"], "search": "a&b"}
        assert parse(to_url(query, "http://test/api/profiles"), PROFILE) == query

    def test_unencodable_value_raises(self):
        class Broken:
            def __str__(self):
                raise ValueError("cannot render")

        with pytest.raises(QueryStringError):
            to_url({"page": Broken()}, "/x")
