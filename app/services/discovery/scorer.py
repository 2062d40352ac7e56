"""
Scorer - Pontuação determinística de candidatos LinkedIn.

Funções puras: nenhuma I/O, nenhum estado. O score é recalculado
sempre que um candidato é produzido a partir de um hit de provider.
"""

import re
from typing import List, Optional

from app.core.constants import (
    BASE_CONFIDENCE,
    NAME_MATCH_BONUS,
    TOP_RANK_BONUS,
    SLUG_MATCH_BONUS,
    MAX_CONFIDENCE,
    MAX_RESULTS_PER_SEARCH,
    MAX_DESCRIPTION_LENGTH,
    UNKNOWN_COMPANY,
    LINKEDIN_COMPANY_URL_TEMPLATE,
)
from .models import CandidateResult, RawSearchHit

# URL aceita em entrada manual (mesmo formato que o formulário aceita)
_MANUAL_URL_RE = re.compile(
    r"^https?://(www\.)?linkedin\.com/company/[a-zA-Z0-9\-_]+/?$"
)
# Hits de provider podem vir com subdomínio de país e sub-páginas (/about/, ?trk=)
_HIT_URL_RE = re.compile(
    r"^https?://([a-z]{2,3}\.)?linkedin\.com/company/([^/?#]+)", re.IGNORECASE
)
_VANITY_RE = re.compile(r"linkedin\.com/company/([^/?#]+)", re.IGNORECASE)
_VALID_VANITY_RE = re.compile(r"^[a-zA-Z0-9\-_]+$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")


def extract_vanity_name(url: str) -> str:
    """Extrai o slug da empresa de uma URL LinkedIn ('' se não houver)."""
    if not url:
        return ""
    match = _VANITY_RE.search(url)
    return match.group(1) if match else ""


def is_valid_linkedin_company_url(url: Optional[str]) -> bool:
    """Valida URL de página de empresa LinkedIn (usado para entrada manual)."""
    if not url or not isinstance(url, str):
        return False
    return bool(_MANUAL_URL_RE.match(url.strip()))


def is_company_hit_url(url: str) -> bool:
    """True se o hit do provider aponta para uma página de empresa válida."""
    if not url:
        return False
    match = _HIT_URL_RE.match(url.strip())
    return bool(match and _VALID_VANITY_RE.match(match.group(2)))


def canonical_company_url(vanity_name: str) -> str:
    return LINKEDIN_COMPANY_URL_TEMPLATE.format(vanity=vanity_name)


def slugify(term: str) -> str:
    """
    Converte um nome em slug LinkedIn plausível.

    "Acme Corp." -> "acme-corp"
    """
    return _NON_ALNUM_RE.sub("-", term.lower()).strip("-")


def extract_company_name(title: Optional[str], description: Optional[str]) -> str:
    """
    Nome da empresa: texto antes do primeiro '|' do título; senão as três
    primeiras palavras da descrição; senão "Unknown Company".
    """
    if title:
        name = title.split("|", 1)[0].strip()
        if name:
            return name
    words = (description or "").split()
    if words:
        return " ".join(words[:3])
    return UNKNOWN_COMPANY


def _first_token(text: str) -> str:
    parts = text.split()
    return parts[0] if parts else ""


def _name_matches(company_name: str, query_term: str) -> bool:
    name = company_name.lower()
    term = query_term.lower()
    if term and term in name:
        return True
    # Contenção reversa compara apenas o primeiro token de cada lado
    name_token = _first_token(name)
    term_token = _first_token(term)
    return bool(name_token and term_token and name_token in term_token)


def score(hit: RawSearchHit, query_term: str, is_top_rank: bool) -> float:
    """
    Calcula a confiança de um hit já validado como URL de empresa.

    Args:
        hit: Resultado bruto do provider
        query_term: Termo buscado (como enviado pelo usuário)
        is_top_rank: True se o provider ranqueou o hit em primeiro

    Returns:
        Confiança em [0, 0.95], arredondada a 2 casas
    """
    confidence = BASE_CONFIDENCE

    company_name = extract_company_name(hit.title, hit.description)
    if _name_matches(company_name, query_term):
        confidence += NAME_MATCH_BONUS

    if is_top_rank:
        confidence += TOP_RANK_BONUS

    vanity = extract_vanity_name(hit.url).lower().replace(" ", "")
    compact_term = _WHITESPACE_RE.sub("", query_term.lower())
    if compact_term and compact_term in vanity:
        confidence += SLUG_MATCH_BONUS

    return round(min(confidence, MAX_CONFIDENCE), 2)


def build_candidates(hits: List[RawSearchHit], query_term: str) -> List[CandidateResult]:
    """
    Transforma hits de um provider em candidatos ordenados.

    Apenas os 3 primeiros hits (ordem do provider) são considerados.
    URLs inválidas são descartadas, slugs repetidos deduplicados, e o
    resultado é ordenado por confiança decrescente (estável).
    """
    candidates: List[CandidateResult] = []
    seen = set()

    for hit in hits[:MAX_RESULTS_PER_SEARCH]:
        if not is_company_hit_url(hit.url):
            continue
        vanity = extract_vanity_name(hit.url)
        key = vanity.lower()
        if key in seen:
            continue
        seen.add(key)

        candidates.append(CandidateResult(
            url=canonical_company_url(vanity),
            vanity_name=vanity,
            company_name=extract_company_name(hit.title, hit.description),
            description=(hit.description or "")[:MAX_DESCRIPTION_LENGTH],
            confidence=score(hit, query_term, hit.rank == 1),
        ))

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    return candidates
