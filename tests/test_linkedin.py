"""Tests for LinkedIn URL normalization.

Covers:
- Username extraction from full URLs, bare domains, /pub/ paths and handles
- Canonical form and idempotence
- Blank input
- Same-contact comparison
- LIKE escaping
- Prospect model derives canonical_linkedin on assignment
"""

import pytest

from altleads.linkedin import (
    CANONICAL_PREFIX,
    extract_linkedin_username,
    ilike_escape,
    is_valid_linkedin_url,
    normalize_linkedin_url,
    same_contact,
)
from altleads.models.prospect import Prospect


class TestExtractUsername:

    @pytest.mark.parametrize("url", [
        "https://www.linkedin.com/in/johndoe",
        "https://www.linkedin.com/in/JohnDoe/",
        "http://linkedin.com/in/johndoe?trk=profile",
        "linkedin.com/in/johndoe",
        "www.linkedin.com/in/johndoe#about",
        "  https://www.linkedin.com/in/johndoe/  ",
        "@JohnDoe",
        "johndoe",
    ])
    def test_variants_resolve_to_same_username(self, url):
        assert extract_linkedin_username(url) == "johndoe"

    def test_pub_path(self):
        assert extract_linkedin_username("https://www.linkedin.com/pub/Jane-Roe") == "jane-roe"

    def test_blank_returns_none(self):
        assert extract_linkedin_username("") is None
        assert extract_linkedin_username("   ") is None
        assert extract_linkedin_username(None) is None


class TestNormalize:

    def test_canonical_form(self):
        assert normalize_linkedin_url("linkedin.com/in/JohnDoe/") == (
            "https://www.linkedin.com/in/johndoe"
        )

    def test_idempotent(self):
        once = normalize_linkedin_url("http://www.LinkedIn.com/in/Some-One/?x=1")
        assert normalize_linkedin_url(once) == once
        assert once.startswith(CANONICAL_PREFIX)

    def test_blank_returns_empty_string(self):
        assert normalize_linkedin_url("") == ""
        assert normalize_linkedin_url(None) == ""

    @pytest.mark.parametrize("url", [
        "https://www.linkedin.com/company/acme",
        "https://www.linkedin.com/sales/lead/ACwAAB123,NAME_SEARCH",
        "linkedin.com/in/",
        "linkedin.com/in/?trk=nav",
        "https://www.linkedin.com/in/Jane-Roe/details/experience/",
        "http://example.com/someone",
        "@handle/extra#frag",
        "https://www.linkedin.com/pub/Old-Style/12/345",
    ])
    def test_idempotent_for_any_input(self, url):
        once = normalize_linkedin_url(url)
        assert normalize_linkedin_url(once) == once

    @pytest.mark.parametrize("url", [
        "https://www.linkedin.com/company/acme",
        "https://www.linkedin.com/sales/lead/ACwAAB123",
        "linkedin.com/in/",
    ])
    def test_non_profile_urls_have_no_username(self, url):
        assert extract_linkedin_username(url) is None
        assert normalize_linkedin_url(url) == ""

    def test_bare_handle_keeps_one_segment(self):
        assert normalize_linkedin_url("http://example.com/someone") == (
            "https://www.linkedin.com/in/example.com"
        )
        assert extract_linkedin_username("@Handle/extra#frag") == "handle"


class TestHelpers:

    def test_same_contact(self):
        assert same_contact("linkedin.com/in/JaneDoe", "https://www.linkedin.com/in/janedoe/")
        assert not same_contact("linkedin.com/in/janedoe", "linkedin.com/in/johndoe")
        assert not same_contact("", "")

    def test_is_valid(self):
        assert is_valid_linkedin_url("https://linkedin.com/in/x")
        assert not is_valid_linkedin_url("https://example.com/in/x")

    def test_ilike_escape(self):
        assert ilike_escape("50%_off\\") == "50\\%\\_off\\\\"


class TestProspectCanonical:

    def test_canonical_derived_on_assignment(self, db_session):
        prospect = Prospect(full_name="A", prospect_linkedin="linkedin.com/in/ABC/")
        assert prospect.canonical_linkedin == "https://www.linkedin.com/in/abc"

        prospect.prospect_linkedin = ""
        assert prospect.canonical_linkedin is None
