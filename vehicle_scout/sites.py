"""
Registry of supported listing sites.

A site is a value object: how to build its search URL, where its embedded
state lives, which markup patterns describe its result cards and how its
pages should be fetched. The extraction chain is shared by all sites and
parameterized by these definitions.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from vehicle_scout.models import SearchQuery
from vehicle_scout.url_builder import (
    AramisautoURLBuilder,
    AutoScout24URLBuilder,
    KyumpURLBuilder,
    LaCentraleURLBuilder,
    LeBonCoinURLBuilder,
    LeParkingURLBuilder,
    ParuVenduURLBuilder,
    ProCarLeaseURLBuilder,
    SiteURLBuilder,
    TransakAutoURLBuilder,
)


DEFAULT_CARD_SELECTORS = (
    'article',
    '[data-item-name]',
    '[class*="VehicleCard"]',
    '[class*="card"]',
    '[class*="listing"]',
    '[class*="annonce"]',
    '[class*="vehicule"]',
    '[class*="item"]',
)

DEFAULT_STATE_PATHS = (
    'props.pageProps.ads',
    'props.pageProps.listings',
    'props.pageProps.data.ads',
    'props.pageProps.searchResults.ads',
    'props.initialState.ads',
    'ads',
    'listings',
    'vehicles',
    'data.ads',
    'searchResults.ads',
)

DEFAULT_FETCH_PARAMS = {
    'js_render': 'true',
    'premium_proxy': 'true',
}


@dataclass(frozen=True)
class MarkupPatterns:
    """CSS selectors and link pattern describing a site's result cards."""
    card_selectors: Tuple[str, ...] = DEFAULT_CARD_SELECTORS
    title_selectors: Tuple[str, ...] = ('h2', 'h3', '[class*="title"]', '[class*="Title"]')
    price_selectors: Tuple[str, ...] = ('[class*="price"]', '[class*="Price"]', '[class*="prix"]')
    city_selectors: Tuple[str, ...] = ('[class*="location"]', '[class*="city"]', '[class*="ville"]')
    link_pattern: str = r'.'


@dataclass(frozen=True)
class SiteDefinition:
    """
    Everything the extraction chain needs to know about one site.

    Attributes:
        name: Display name, also used as listing source
        base_url: Site root, used to resolve relative links
        url_builder: Search URL builder
        patterns: Markup patterns for card extraction
        state_paths: Dotted paths to the ads array in embedded state JSON
        supports_opportunity: Whether the brand-only opportunity pass is worth running
        supports_structured: Whether the fetch provider can auto-parse this site
        pass_timeout_s: Per-pass deadline override
        ad_url_template: Listing URL built from an ad id when the state JSON has no link
        fetch_params: Extra fetch capability parameters
    """
    name: str
    base_url: str
    url_builder: SiteURLBuilder
    patterns: MarkupPatterns = MarkupPatterns()
    state_paths: Tuple[str, ...] = DEFAULT_STATE_PATHS
    supports_opportunity: bool = False
    supports_structured: bool = False
    pass_timeout_s: Optional[float] = None
    ad_url_template: Optional[str] = None
    fetch_params: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FETCH_PARAMS))

    def build_url(self, query: SearchQuery) -> str:
        return self.url_builder.build_search_url(query)


SITES: List[SiteDefinition] = [
    SiteDefinition(
        name='LeBonCoin',
        base_url='https://www.leboncoin.fr',
        url_builder=LeBonCoinURLBuilder(),
        patterns=MarkupPatterns(
            card_selectors=('[data-qa-id="aditem_container"]', 'a[data-test-id="ad"]') + DEFAULT_CARD_SELECTORS,
            title_selectors=('[data-qa-id="aditem_title"]', '[data-test-id="adcard-title"]', 'h2', 'h3'),
            price_selectors=('[data-qa-id="aditem_price"]', '[data-test-id="price"]', '[class*="price"]'),
            city_selectors=('[data-qa-id="aditem_location"]', '[class*="location"]'),
            link_pattern=r'/ad/(?:[a-z_]+/)?\d+',
        ),
        state_paths=('props.pageProps.searchData.ads',) + DEFAULT_STATE_PATHS,
        supports_opportunity=True,
        pass_timeout_s=15.0,
        ad_url_template='https://www.leboncoin.fr/ad/{id}',
    ),
    SiteDefinition(
        name='LaCentrale',
        base_url='https://www.lacentrale.fr',
        url_builder=LaCentraleURLBuilder(),
        patterns=MarkupPatterns(
            card_selectors=('[data-testid="vehicleCardV2"]', '[class*="searchCard"]') + DEFAULT_CARD_SELECTORS,
            link_pattern=r'/auto-occasion-annonce-\d+',
        ),
        state_paths=('props.pageProps.searchData.classifieds', 'searchData.classifieds') + DEFAULT_STATE_PATHS,
        supports_structured=True,
        pass_timeout_s=15.0,
    ),
    SiteDefinition(
        name='ParuVendu',
        base_url='https://www.paruvendu.fr',
        url_builder=ParuVenduURLBuilder(),
        patterns=MarkupPatterns(
            card_selectors=('div.ergov3-annonce', '[class*="blocAnnonce"]') + DEFAULT_CARD_SELECTORS,
            link_pattern=r'/a/voiture-occasion/[^?#]*\d{5,}',
        ),
        pass_timeout_s=12.0,
    ),
    SiteDefinition(
        name='AutoScout24',
        base_url='https://www.autoscout24.fr',
        url_builder=AutoScout24URLBuilder(),
        patterns=MarkupPatterns(
            card_selectors=('article[data-guid]', 'article[class*="cldt-summary"]') + DEFAULT_CARD_SELECTORS,
            link_pattern=r'/offres/',
        ),
        state_paths=('props.pageProps.listings',) + DEFAULT_STATE_PATHS,
        supports_structured=True,
        pass_timeout_s=12.0,
    ),
    SiteDefinition(
        name='LeParking',
        base_url='https://www.leparking.fr',
        url_builder=LeParkingURLBuilder(),
        patterns=MarkupPatterns(
            card_selectors=('li.li-result', '[class*="resultat"]') + DEFAULT_CARD_SELECTORS,
            link_pattern=r'/voiture-occasion/|/annonce',
        ),
        pass_timeout_s=12.0,
    ),
    SiteDefinition(
        name='ProCarLease',
        base_url='https://procarlease.com',
        url_builder=ProCarLeaseURLBuilder(),
        patterns=MarkupPatterns(link_pattern=r'/fr/detail/\?id=\d+'),
        pass_timeout_s=10.0,
        ad_url_template='https://procarlease.com/fr/detail/?id={id}',
    ),
    SiteDefinition(
        name='TransakAuto',
        base_url='https://annonces.transakauto.com',
        url_builder=TransakAutoURLBuilder(),
        patterns=MarkupPatterns(link_pattern=r'/annonce|/vehicule'),
        pass_timeout_s=10.0,
        fetch_params={**DEFAULT_FETCH_PARAMS, 'wait': '3000'},
        ad_url_template='https://annonces.transakauto.com/vehicule/{id}',
    ),
    SiteDefinition(
        name='Aramisauto',
        base_url='https://www.aramisauto.com',
        url_builder=AramisautoURLBuilder(),
        patterns=MarkupPatterns(link_pattern=r'/voitures/[^?#]+/\d+'),
        pass_timeout_s=12.0,
    ),
    SiteDefinition(
        name='Kyump',
        base_url='https://www.kyump.com',
        url_builder=KyumpURLBuilder(),
        patterns=MarkupPatterns(link_pattern=r'/voiture-occasion/[^?#]+'),
        pass_timeout_s=10.0,
    ),
]


def get_site(name: str) -> SiteDefinition:
    """Look up a site by name (case-insensitive)."""
    for site in SITES:
        if site.name.lower() == name.lower():
            return site
    raise KeyError(f"Unknown site: {name}")


def active_sites(query: SearchQuery, sites: Optional[List[SiteDefinition]] = None) -> List[SiteDefinition]:
    """Sites to query for a search, minus the caller's exclusions."""
    excluded = {name.lower() for name in query.excluded_sites}
    return [site for site in (sites if sites is not None else SITES) if site.name.lower() not in excluded]
