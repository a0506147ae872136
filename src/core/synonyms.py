"""
Static synonym groups used by the relevance filter.
"""
from typing import Dict, FrozenSet, Iterable

SYNONYM_GROUPS: Dict[str, FrozenSet[str]] = {
    "laptop": frozenset({"macbook", "workstation", "pc", "computer", "notebook", "ultrabook"}),
    "phone": frozenset({"smartphone", "iphone", "android", "mobile", "cellphone"}),
    "saas": frozenset({"software", "subscription", "b2b"}),
    "crm": frozenset({"hubspot", "salesforce", "pipedrive", "pipeline"}),
    "hosting": frozenset({"vps", "server", "cloud", "aws", "hetzner", "digitalocean"}),
    "accountant": frozenset({"bookkeeper", "cpa", "bookkeeping", "accounting", "taxes"}),
    "monitor": frozenset({"display", "screen"}),
    "headphones": frozenset({"earbuds", "headset", "airpods", "earphones"}),
    "car": frozenset({"vehicle", "sedan", "suv", "truck", "ev"}),
    "developer": frozenset({"programmer", "engineer", "coder", "freelancer"}),
    "marketing": frozenset({"ads", "advertising", "seo", "outreach", "growth"}),
    "email": frozenset({"newsletter", "mailchimp", "inbox", "outreach"}),
}


def group_terms(anchor: str) -> FrozenSet[str]:
    """Return the anchor together with all of its sibling terms."""
    return SYNONYM_GROUPS[anchor] | {anchor}


def expand_keywords(keywords: Iterable[str]) -> FrozenSet[str]:
    """
    Collect every term of every synonym group that one of the keywords
    belongs to, either as the anchor or as a sibling. Matching is
    case-insensitive; the returned terms are lower-case.
    """
    lowered = {k.strip().lower() for k in keywords if k and k.strip()}
    expanded: set = set()

    for anchor in SYNONYM_GROUPS:
        terms = group_terms(anchor)
        if lowered & terms:
            expanded |= terms

    return frozenset(expanded)
