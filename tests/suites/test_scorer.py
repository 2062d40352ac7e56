"""
Testes do scorer: regras de confiança, extração de nome e montagem de
candidatos a partir dos hits de um provider.
"""

import pytest

from app.services.discovery.scorer import (
    build_candidates,
    extract_company_name,
    extract_vanity_name,
    is_company_hit_url,
    is_valid_linkedin_company_url,
    score,
    slugify,
)
from tests.fakes import make_hit, microsoft_hits


class TestScore:
    def test_all_bonuses_are_capped_at_095(self):
        hit = make_hit("Microsoft | LinkedIn", "https://www.linkedin.com/company/microsoft", rank=1)
        assert score(hit, "Microsoft", is_top_rank=True) == 0.95

    def test_base_confidence_only(self):
        hit = make_hit("Contoso Ltd | LinkedIn", "https://www.linkedin.com/company/contoso", rank=2)
        assert score(hit, "Fabrikam", is_top_rank=False) == 0.6

    def test_name_and_slug_match_without_top_rank(self):
        hit = make_hit(
            "Microsoft Research | LinkedIn",
            "https://www.linkedin.com/company/microsoft-research/",
            rank=2,
        )
        assert score(hit, "Microsoft", is_top_rank=False) == 0.9

    def test_reverse_containment_uses_first_tokens(self):
        hit = make_hit("Acme | LinkedIn", "https://www.linkedin.com/company/acme-global", rank=None)
        # "acme corporation brasil" não está em "acme", mas "acme" está em "acme"
        assert score(hit, "Acme Corporation Brasil", is_top_rank=False) == 0.85

    def test_top_rank_bonus(self):
        hit = make_hit("Initech | LinkedIn", "https://www.linkedin.com/company/initech", rank=1)
        assert score(hit, "Globex", is_top_rank=True) == 0.7

    def test_slug_match_ignores_whitespace_in_term(self):
        hit = make_hit("Something Else", "https://www.linkedin.com/company/nubankbrasil", rank=3)
        assert score(hit, "Nubank Brasil", is_top_rank=False) == 0.65

    @pytest.mark.parametrize("rank", [None, 1, 2, 7])
    def test_confidence_always_within_range(self, rank):
        hit = make_hit("Acme Corp | LinkedIn", "https://www.linkedin.com/company/acme", rank=rank)
        for term in ["Acme", "acme corp", "Zeta", "A c m e", "acme corp international ltda"]:
            value = score(hit, term, is_top_rank=rank == 1)
            assert 0.0 <= value <= 0.95


class TestExtraction:
    def test_company_name_from_title(self):
        assert extract_company_name("Nubank | LinkedIn", "whatever") == "Nubank"

    def test_company_name_from_description_first_three_words(self):
        assert extract_company_name(None, "Leading provider of cloud services") == "Leading provider of"

    def test_company_name_unknown(self):
        assert extract_company_name("", "") == "Unknown Company"
        assert extract_company_name(None, None) == "Unknown Company"

    def test_vanity_name(self):
        assert extract_vanity_name("https://br.linkedin.com/company/nubank/about/?trk=x") == "nubank"
        assert extract_vanity_name("https://www.linkedin.com/in/someone") == ""

    def test_slugify(self):
        assert slugify("Acme Corp.") == "acme-corp"
        assert slugify("  Café & Cia  ") == "caf-cia"
        assert slugify("!!!") == ""


class TestUrlValidation:
    @pytest.mark.parametrize("url", [
        "https://www.linkedin.com/company/microsoft/",
        "https://linkedin.com/company/microsoft",
        "http://www.linkedin.com/company/acme_corp-2",
        "  https://www.linkedin.com/company/nubank  ",
    ])
    def test_valid_manual_urls(self, url):
        assert is_valid_linkedin_company_url(url)

    @pytest.mark.parametrize("url", [
        None,
        "",
        "not a url",
        "https://www.linkedin.com/in/satyanadella",
        "https://www.linkedin.com/company/",
        "https://www.linkedin.com/company/acme/about",
        "https://www.linkedin.com.evil.io/company/acme",
        "ftp://linkedin.com/company/acme",
    ])
    def test_invalid_manual_urls(self, url):
        assert not is_valid_linkedin_company_url(url)

    def test_hit_urls_accept_country_subdomain_and_subpages(self):
        assert is_company_hit_url("https://br.linkedin.com/company/nubank/about/")
        assert is_company_hit_url("https://www.linkedin.com/company/acme?trk=public")
        assert not is_company_hit_url("https://www.linkedin.com/school/usp/")
        assert not is_company_hit_url("")


class TestBuildCandidates:
    def test_microsoft_hits(self):
        candidates = build_candidates(microsoft_hits(), "Microsoft")

        assert [c.vanity_name for c in candidates] == ["microsoft", "microsoft-research"]
        assert candidates[0].url == "https://www.linkedin.com/company/microsoft/"
        assert candidates[0].company_name == "Microsoft"
        assert candidates[0].confidence == 0.95
        assert candidates[1].confidence == 0.9

    def test_only_first_three_hits_are_considered(self):
        hits = [
            make_hit("Perfil", "https://www.linkedin.com/in/a", rank=1),
            make_hit("Vaga", "https://www.linkedin.com/jobs/view/1", rank=2),
            make_hit("Post", "https://www.linkedin.com/posts/x", rank=3),
            make_hit("Acme | LinkedIn", "https://www.linkedin.com/company/acme", rank=4),
        ]
        assert build_candidates(hits, "Acme") == []

    def test_duplicate_vanity_names_are_removed(self):
        hits = [
            make_hit("Acme | LinkedIn", "https://www.linkedin.com/company/acme", rank=1),
            make_hit("Acme | LinkedIn", "https://br.linkedin.com/company/ACME/about/", rank=2),
        ]
        candidates = build_candidates(hits, "Acme")
        assert len(candidates) == 1
        assert candidates[0].url == "https://www.linkedin.com/company/acme/"

    def test_description_is_truncated(self):
        hits = [make_hit("Acme | LinkedIn", "https://www.linkedin.com/company/acme", "x" * 500)]
        assert len(build_candidates(hits, "Acme")[0].description) == 200

    def test_sorted_by_confidence_descending(self):
        hits = [
            make_hit("Globex | LinkedIn", "https://www.linkedin.com/company/globex", rank=1),
            make_hit("Acme | LinkedIn", "https://www.linkedin.com/company/acme", rank=2),
        ]
        candidates = build_candidates(hits, "Acme")
        assert [c.vanity_name for c in candidates] == ["acme", "globex"]
        assert candidates[0].confidence > candidates[1].confidence

    def test_missing_rank_is_not_first(self):
        hits = [make_hit("Initech | LinkedIn", "https://www.linkedin.com/company/initech", rank=None)]
        assert build_candidates(hits, "Globex")[0].confidence == 0.6
