"""
Mapping of site JSON objects (embedded state, auto-parsed pages, JSON-LD)
into raw listing fragments.

Sites disagree on key names; the mappers try the known variants in order and
keep the raw values. Typing happens later in the normalizer.
"""

from typing import Any, Dict, Iterable, List, Optional

from vehicle_scout.field_parsers import to_number_fr
from vehicle_scout.models import ExtractionMethod, MileageCandidate, RawListingFragment


def dig(data: Any, path: str) -> Any:
    """Follow a dotted path through nested dicts ("props.pageProps.ads")."""
    current = data
    for key in path.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_value(data: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, '', [], {}):
            return value
    return None


def mileage_candidate(value: Any, source: str) -> Optional[MileageCandidate]:
    """Build a candidate from a raw reading, None when it is not a number."""
    number = to_number_fr(value)
    if number is None:
        return None
    return MileageCandidate(value=int(round(number)), source=source, raw=str(value))


def _scalar(value: Any, keys=('amount', 'value', 'price')) -> Any:
    """Unwrap [12000] or {"amount": 12000} style values."""
    if isinstance(value, list):
        return value[0] if value else None
    if isinstance(value, dict):
        return first_value(value, keys)
    return value


def _image(ad: Dict[str, Any]) -> Optional[str]:
    images = ad.get('images')
    if isinstance(images, dict):
        for key in ('urls_thumb', 'urls', 'urls_large'):
            urls = images.get(key)
            if isinstance(urls, list) and urls:
                return urls[0]
        if images.get('thumb_url'):
            return images['thumb_url']
    if isinstance(images, list) and images:
        first = images[0]
        return first if isinstance(first, str) else _scalar(first, ('url', 'src', 'href'))

    image = first_value(ad, ('image', 'imageUrl', 'image_url', 'thumbnail', 'photo', 'picture'))
    if isinstance(image, (dict, list)):
        image = _scalar(image, ('url', 'src', 'contentUrl'))
    return image if isinstance(image, str) else None


def _attributes(ad: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten LeBonCoin-style [{"key": "mileage", "value": "98000"}] lists."""
    attributes = ad.get('attributes')
    if isinstance(attributes, dict):
        return attributes
    flattened = {}
    if isinstance(attributes, list):
        for attribute in attributes:
            if isinstance(attribute, dict) and attribute.get('key'):
                flattened[attribute['key']] = attribute.get('value_label') or attribute.get('value')
                flattened[f"{attribute['key']}_raw"] = attribute.get('value')
    return flattened


def map_ad(
    ad: Any,
    method: ExtractionMethod,
    origin: str,
    ad_url_template: Optional[str] = None,
) -> Optional[RawListingFragment]:
    """
    Map one ad object from site JSON.

    Args:
        ad: Ad object as found in the JSON
        method: Strategy producing the fragment
        origin: Source-path prefix for mileage candidates ("NEXT_DATA", ...)
        ad_url_template: Fallback listing URL pattern with an {id} placeholder

    Returns:
        RawListingFragment, or None when ad is not an object
    """
    if not isinstance(ad, dict):
        return None

    attributes = _attributes(ad)
    vehicle = ad.get('vehicle') if isinstance(ad.get('vehicle'), dict) else {}
    vehicle_attributes = _attributes(vehicle) if vehicle else {}

    url = first_value(ad, ('url', 'link', 'href', 'permalink', 'detailUrl'))
    ad_id = first_value(ad, ('list_id', 'id', 'adId', 'classifiedId'))
    if not url and ad_id and ad_url_template:
        url = ad_url_template.format(id=ad_id)

    location = ad.get('location')
    city = location.get('city') if isinstance(location, dict) else location
    city = city or first_value(ad, ('city', 'ville'))

    candidates: List[MileageCandidate] = []
    for value, source in (
        (attributes.get('mileage_raw', attributes.get('mileage')), f"{origin}.attributes.mileage"),
        (vehicle_attributes.get('mileage'), f"{origin}.vehicle.attributes.mileage"),
        (vehicle.get('mileage'), f"{origin}.vehicle.mileage"),
        (first_value(ad, ('mileage', 'km', 'kilometrage', 'kilometers')), f"{origin}.mileage"),
    ):
        if value is not None:
            candidate = mileage_candidate(_scalar(value), source)
            if candidate:
                candidates.append(candidate)

    year = (
        attributes.get('regdate')
        or vehicle.get('year')
        or first_value(ad, ('year', 'annee', 'firstRegistration', 'registrationDate', 'modelYear'))
    )

    return RawListingFragment(
        strategy=method,
        title=first_value(ad, ('subject', 'title', 'name', 'label', 'titre')),
        price=_scalar(first_value(ad, ('price', 'priceValue', 'prix'))),
        year=_scalar(year),
        mileage=candidates[0].value if candidates else None,
        url=url if isinstance(url, str) else None,
        image_url=_image(ad),
        city=city if isinstance(city, str) else None,
        description=first_value(ad, ('body', 'description')),
        fuel=attributes.get('fuel') or first_value(ad, ('fuel', 'fuelType', 'energie')),
        gearbox=attributes.get('gearbox') or first_value(ad, ('gearbox', 'transmission', 'boite')),
        mileage_candidates=candidates,
    )


JSON_LD_LISTING_TYPES = {'Car', 'Vehicle', 'Product', 'Offer', 'MotorizedBicycle'}


def iter_json_ld_items(data: Any) -> Iterable[Dict[str, Any]]:
    """Yield listing-like objects from a JSON-LD document (ItemList, @graph, arrays)."""
    if isinstance(data, list):
        for element in data:
            yield from iter_json_ld_items(element)
        return
    if not isinstance(data, dict):
        return

    if isinstance(data.get('@graph'), list):
        yield from iter_json_ld_items(data['@graph'])
        return

    kind = data.get('@type')
    kinds = set(kind) if isinstance(kind, list) else {kind}

    if 'ItemList' in kinds:
        for element in data.get('itemListElement') or []:
            if isinstance(element, dict) and isinstance(element.get('item'), dict):
                yield from iter_json_ld_items(element['item'])
            else:
                yield from iter_json_ld_items(element)
    elif kinds & JSON_LD_LISTING_TYPES:
        yield data


def map_json_ld(item: Dict[str, Any]) -> RawListingFragment:
    """Map a schema.org Car/Vehicle/Product object."""
    offers = item.get('offers')
    if isinstance(offers, list):
        offers = offers[0] if offers else {}
    offers = offers if isinstance(offers, dict) else {}

    odometer = item.get('mileageFromOdometer')
    candidates = []
    if odometer is not None:
        candidate = mileage_candidate(_scalar(odometer, ('value',)), 'JSON_LD')
        if candidate:
            candidates.append(candidate)

    image = item.get('image')
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        image = image.get('url') or image.get('contentUrl')

    area = dig(offers, 'availableAtOrFrom.address.addressLocality')

    return RawListingFragment(
        strategy=ExtractionMethod.JSON_LD,
        title=item.get('name'),
        price=offers.get('price') if offers else item.get('price'),
        year=first_value(item, ('vehicleModelDate', 'productionDate', 'dateVehicleFirstRegistered', 'modelDate')),
        mileage=candidates[0].value if candidates else None,
        url=item.get('url') or offers.get('url'),
        image_url=image if isinstance(image, str) else None,
        city=area if isinstance(area, str) else None,
        description=item.get('description'),
        fuel=item.get('fuelType'),
        gearbox=item.get('vehicleTransmission'),
        mileage_candidates=candidates,
    )
