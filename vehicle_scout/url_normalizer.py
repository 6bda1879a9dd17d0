"""
Listing URL normalization.

Every listing handed to the caller must point to an absolute, valid URL.
Relative links found in markup are resolved against the site's domain.
"""

import logging
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

logger = logging.getLogger(__name__)


DOMAIN_MAP = {
    'leboncoin': 'https://www.leboncoin.fr',
    'lacentrale': 'https://www.lacentrale.fr',
    'paruvendu': 'https://www.paruvendu.fr',
    'autoscout24': 'https://www.autoscout24.fr',
    'leparking': 'https://www.leparking.fr',
    'procarlease': 'https://procarlease.com',
    'transakauto': 'https://annonces.transakauto.com',
    'aramisauto': 'https://www.aramisauto.com',
    'kyump': 'https://www.kyump.com',
}

_LBC_AD_ID = re.compile(r'/ad/(?:ad/)*(?:[a-z_]+/)?(\d+)')


def site_key(site: str) -> str:
    """Lookup key for a site display name ("AutoScout24" -> "autoscout24")."""
    return re.sub(r'[^a-z0-9]', '', (site or '').lower())


def is_valid_url(url: Optional[str]) -> bool:
    """Check that url is an absolute http(s) URL with a host."""
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc) and '.' in parsed.netloc


def normalize_listing_url(raw_url: Optional[str], site: str) -> Optional[str]:
    """
    Turn a scraped link into an absolute listing URL.

    Args:
        raw_url: Link as found on the page (absolute, protocol-relative or relative)
        site: Site name the link was scraped from

    Returns:
        Absolute URL, or None if no valid URL can be built
    """
    if not raw_url or not isinstance(raw_url, str):
        return None

    url = raw_url.strip()
    if not url or url.startswith(('javascript:', 'mailto:', '#')):
        return None

    key = site_key(site)
    base = DOMAIN_MAP.get(key)

    if url.startswith('//'):
        url = f"https:{url}"
    elif not url.startswith(('http://', 'https://')):
        if not base:
            logger.debug(f"Cannot resolve relative URL without a known domain: {url}")
            return None
        url = urljoin(base + '/', url.lstrip('/'))

    if key == 'leboncoin':
        match = _LBC_AD_ID.search(url)
        if match:
            url = f"{DOMAIN_MAP['leboncoin']}/ad/{match.group(1)}"

    return url if is_valid_url(url) else None
