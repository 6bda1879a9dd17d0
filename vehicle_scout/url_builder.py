"""
Search URL construction for every supported site.

Each builder turns a (pass-derived) SearchQuery into the site's own search
URL, with properly encoded query parameters.
"""

import re
from typing import Dict, Optional
from urllib.parse import quote, urlencode, quote_plus

from vehicle_scout.field_parsers import normalize_text
from vehicle_scout.models import SearchQuery


def slugify(text: Optional[str]) -> str:
    """ASCII slug for URL path segments ("Série 3" -> "serie-3")."""
    return re.sub(r'[^a-z0-9]+', '-', normalize_text(text)).strip('-')


class SiteURLBuilder:
    """Constructs one site's search URL from a SearchQuery.

    Subclasses set BASE_URL and implement build_search_url().
    """

    BASE_URL = ""

    def build_search_url(self, query: SearchQuery) -> str:
        raise NotImplementedError

    def _with_params(self, params: Dict[str, str], base: Optional[str] = None) -> str:
        # quote_via=quote_plus converts spaces to + instead of %20
        encoded_params = urlencode(
            {key: value for key, value in params.items() if value not in (None, '')},
            quote_via=quote_plus,
        )
        base = base or self.BASE_URL
        return f"{base}?{encoded_params}" if encoded_params else base


class LeBonCoinURLBuilder(SiteURLBuilder):
    """Builds https://www.leboncoin.fr/recherche URLs (category 2 = cars)."""

    BASE_URL = "https://www.leboncoin.fr/recherche"
    FUEL_CODES = {'essence': '1', 'diesel': '2', 'electrique': '3', 'hybride': '4', 'gpl': '5'}

    def build_search_url(self, query: SearchQuery) -> str:
        params = {'category': '2', 'text': query.text, 'sort': 'time'}

        if query.max_price is not None:
            params['price'] = f"{query.min_price or 0}-{query.max_price}"
        elif query.min_price is not None:
            params['price'] = f"{query.min_price}-max"

        if query.mileage_max:
            params['mileage'] = f"min-{query.mileage_max}"

        if query.year_min or query.year_max:
            params['regdate'] = f"{query.year_min or 'min'}-{query.year_max or 'max'}"

        fuel = self.FUEL_CODES.get(normalize_text(query.fuel_type))
        if fuel:
            params['fuel'] = fuel

        if query.location:
            params['locations'] = query.location
            if query.radius_km:
                params['radius'] = str(query.radius_km * 1000)

        return self._with_params(params)


class LaCentraleURLBuilder(SiteURLBuilder):
    """Builds https://www.lacentrale.fr/listing URLs (BRAND:MODEL facet)."""

    BASE_URL = "https://www.lacentrale.fr/listing"

    def build_search_url(self, query: SearchQuery) -> str:
        make_model = query.brand.upper()
        if query.model:
            make_model = f"{make_model}:{query.model.upper()}"

        params = {'makesModelsCommercialNames': make_model}
        if query.max_price is not None:
            params['priceMax'] = str(query.max_price)
        if query.min_price is not None:
            params['priceMin'] = str(query.min_price)
        if query.mileage_max:
            params['mileageMax'] = str(query.mileage_max)
        if query.year_min:
            params['yearMin'] = str(query.year_min)
        if query.year_max:
            params['yearMax'] = str(query.year_max)
        return self._with_params(params)


class ParuVenduURLBuilder(SiteURLBuilder):
    """Builds path-based https://www.paruvendu.fr/a/voiture-occasion URLs."""

    BASE_URL = "https://www.paruvendu.fr/a/voiture-occasion"

    def build_search_url(self, query: SearchQuery) -> str:
        path = f"{self.BASE_URL}/{quote(slugify(query.brand))}/"
        if query.model:
            path += f"{quote(slugify(query.model))}/"
        return path


class AutoScout24URLBuilder(SiteURLBuilder):
    """Builds https://www.autoscout24.fr/lst/{brand}/{model} URLs.

    AutoScout24 lists engine variants under the base model, so trailing
    numeric tokens ("Golf 7", "308 1.6") are dropped from the model slug.
    """

    BASE_URL = "https://www.autoscout24.fr/lst"

    @staticmethod
    def base_model(model: Optional[str]) -> str:
        words = normalize_text(model).split()
        while len(words) > 1 and re.match(r'^\d[\d.,]*[a-z]*$', words[-1]):
            words.pop()
        return '-'.join(slugify(word) for word in words if slugify(word))

    def build_search_url(self, query: SearchQuery) -> str:
        path = f"{self.BASE_URL}/{slugify(query.brand)}"
        model_slug = self.base_model(query.model)
        if model_slug:
            path += f"/{model_slug}"

        params = {}
        if query.max_price is not None:
            params['price'] = str(query.max_price)
        if query.mileage_max:
            params['kmto'] = str(query.mileage_max)
        if query.year_min:
            params['fregfrom'] = str(query.year_min)
        return self._with_params(params, base=path)


class LeParkingURLBuilder(SiteURLBuilder):
    """Builds https://www.leparking.fr/voiture/{brand-model}/prix-max-{max} URLs."""

    BASE_URL = "https://www.leparking.fr/voiture"

    def build_search_url(self, query: SearchQuery) -> str:
        url = f"{self.BASE_URL}/{slugify(query.text)}"
        if query.max_price is not None:
            url += f"/prix-max-{query.max_price}"
        return url


class ProCarLeaseURLBuilder(SiteURLBuilder):
    BASE_URL = "https://procarlease.com/fr/vehicules"

    def build_search_url(self, query: SearchQuery) -> str:
        return self._with_params({
            'marque': query.brand,
            'modele': query.model or '',
            'prix_max': str(query.max_price) if query.max_price is not None else '',
        })


class TransakAutoURLBuilder(SiteURLBuilder):
    BASE_URL = "https://annonces.transakauto.com/"

    def build_search_url(self, query: SearchQuery) -> str:
        return self._with_params({
            'marque': query.brand.lower().strip(),
            'modele': (query.model or '').lower().strip(),
            'prix_max': str(query.max_price) if query.max_price is not None else '',
        })


class AramisautoURLBuilder(SiteURLBuilder):
    BASE_URL = "https://www.aramisauto.com/acheter/recherche"

    def build_search_url(self, query: SearchQuery) -> str:
        return self._with_params({
            'makes[]': query.brand.upper(),
            'models[]': (query.model or '').upper(),
            'priceMax': str(query.max_price) if query.max_price is not None else '',
        })


class KyumpURLBuilder(SiteURLBuilder):
    BASE_URL = "https://www.kyump.com/voiture-occasion"

    def build_search_url(self, query: SearchQuery) -> str:
        return self._with_params({
            'marque': query.brand.upper(),
            'modele': (query.model or '').upper(),
            'prixMax': str(query.max_price) if query.max_price is not None else '',
        })
