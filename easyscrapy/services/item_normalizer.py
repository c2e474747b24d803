"""Scraped item adapter: turns raw actor dataset rows into a normalized ScrapedItem.

Actor output shapes vary (``marketplace_listing_title`` vs ``custom_title``,
nested ``listing_price.amount``, photo objects vs plain URLs). Every call site
goes through ``normalize_item`` instead of probing optional fields itself.

Fallback order per field (first non-empty wins):

    title        marketplace_listing_title, custom_title, title, name
                 (posts: text, message, postText, title), else "No Title"
                 (comments: profileName; page info: title, pageName, name)
    price        listing_price.amount (> 0) formatted by currency,
                 numeric price -> "{n} EUR", string price, prix, else "N/A"
    description  redacted_description.text, redacted_description (str),
                 description (posts: text, message), else "Description non disponible"
                 (comments: text; page info: intro, about, info)
    images       primary_listing_photo.listing_image.uri,
                 primary_listing_photo.image.uri, listing_photos[].image.uri,
                 imageUrl, profilePictureUrl, coverPhotoUrl,
                 image (str or {uri}); max 3, http(s) only, deduplicated
    location     str location, location.reverse_geocode_detailed.city,
                 location.reverse_geocode.city,
                 location.reverse_geocode.city_page.display_name (first part),
                 address, lieu, else "Unknown"
    url          listingUrl, url, link, href, postUrl
                 (comments: commentUrl first; page info: pageUrl, facebookUrl first)
    posted_at    postedAt, date, time, timestamp
    external_id  id, postId, url
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from easyscrapy.constants import (
    ITEM_LOCATION_MAX,
    ITEM_PRICE_MAX,
    ITEM_TITLE_MAX,
    ITEM_URL_MAX,
    MAX_ITEM_IMAGES,
    MGA_NEGOTIABLE_THRESHOLD,
)

NO_TITLE = "No Title"
NO_PRICE = "N/A"
NEGOTIABLE_PRICE = "Prix à négocier"
NO_DESCRIPTION = "No Description"
DESCRIPTION_UNAVAILABLE = "Description non disponible"
UNKNOWN_LOCATION = "Unknown"


@dataclass(frozen=True)
class ScrapedItem:
    item_type: str
    title: str
    price: str
    description: str
    location: str
    external_id: str | None = None
    price_amount: float | None = None
    currency: str | None = None
    url: str | None = None
    posted_at: str | None = None
    images: tuple[str, ...] = field(default_factory=tuple)

    @property
    def image_url(self) -> str | None:
        return self.images[0] if self.images else None

    def to_preview(self) -> dict[str, Any]:
        """JSON-friendly dict stored in the session's preview column."""
        data = asdict(self)
        data["images"] = list(self.images)
        data["image_url"] = self.image_url
        return data


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, "", [], {}):
            return value
    return None


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace("\u202f", "").replace("\xa0", "").replace(" ", "").replace(",", ".")
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def format_amount_fr(amount: float) -> str:
    """Format a number the way fr-FR locales do: space thousands, comma decimals."""
    if float(amount).is_integer():
        return f"{int(amount):,}".replace(",", " ")
    whole, _, frac = f"{amount:.3f}".rstrip("0").partition(".")
    return f"{int(whole):,}".replace(",", " ") + ("," + frac if frac else "")


def _format_amount_plain(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


def _extract_price(raw: dict[str, Any]) -> tuple[str, float | None, str | None]:
    listing_price = raw.get("listing_price")
    if isinstance(listing_price, dict):
        amount = _to_float(listing_price.get("amount"))
        if amount is not None and amount > 0:
            currency = (listing_price.get("currency") or "MGA").upper()
            if currency == "MGA":
                if amount < MGA_NEGOTIABLE_THRESHOLD:
                    return NEGOTIABLE_PRICE, amount, currency
                return f"{format_amount_fr(amount)} MGA", amount, currency
            if currency == "USD":
                return f"${_format_amount_plain(amount)}", amount, currency
            return f"{_format_amount_plain(amount)} {currency}", amount, currency

    price = raw.get("price")
    if isinstance(price, (int, float)) and not isinstance(price, bool):
        return f"{_format_amount_plain(price)} EUR", float(price), "EUR"
    if isinstance(price, str) and price.strip():
        return price.strip(), _to_float(price), None

    prix = raw.get("prix")
    if prix not in (None, ""):
        return str(prix), _to_float(prix), None

    return NO_PRICE, None, None


def _extract_description(raw: dict[str, Any], item_type: str) -> str:
    redacted = raw.get("redacted_description")
    if isinstance(redacted, dict):
        redacted = redacted.get("text")
    candidates = [redacted, raw.get("description")]
    if item_type in ("post", "comment"):
        candidates += [raw.get("text"), raw.get("message")]
    elif item_type == "page_info":
        candidates += [raw.get("intro"), raw.get("about"), raw.get("info")]
    value = _first(*[c for c in candidates if isinstance(c, str) and c.strip()])
    if not value or value.strip() == NO_DESCRIPTION:
        return DESCRIPTION_UNAVAILABLE
    return value.strip()


def _extract_images(raw: dict[str, Any]) -> tuple[str, ...]:
    candidates: list[Any] = [
        _dig(raw, "primary_listing_photo", "listing_image", "uri"),
        _dig(raw, "primary_listing_photo", "image", "uri"),
    ]
    photos = raw.get("listing_photos")
    if isinstance(photos, list):
        candidates.extend(_dig(photo, "image", "uri") for photo in photos)
    candidates.append(raw.get("imageUrl"))
    candidates += [raw.get("profilePictureUrl"), raw.get("coverPhotoUrl")]
    image = raw.get("image")
    candidates.append(image.get("uri") if isinstance(image, dict) else image)
    media = raw.get("media")
    if isinstance(media, list):
        candidates.extend(_first(_dig(m, "thumbnail"), _dig(m, "photo_image", "uri")) for m in media)

    images: list[str] = []
    for uri in candidates:
        if not isinstance(uri, str) or not uri:
            continue
        if uri.startswith("//"):
            uri = "https:" + uri
        if not uri.startswith("http") or uri in images:
            continue
        images.append(uri)
        if len(images) == MAX_ITEM_IMAGES:
            break
    return tuple(images)


def _extract_location(raw: dict[str, Any]) -> str:
    location = raw.get("location")
    if isinstance(location, str) and location.strip():
        return location.strip()
    if isinstance(location, dict):
        city = _first(
            _dig(location, "reverse_geocode_detailed", "city"),
            _dig(location, "reverse_geocode", "city"),
        )
        if city:
            return str(city)
        display_name = _dig(location, "reverse_geocode", "city_page", "display_name")
        if isinstance(display_name, str) and display_name.strip():
            return display_name.split(",")[0].strip()
    address = raw.get("address")
    if isinstance(address, str) and address.strip():
        return address.strip()
    lieu = raw.get("lieu")
    if isinstance(lieu, str) and lieu.strip():
        return lieu.strip()
    return UNKNOWN_LOCATION


def _truncate(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


def normalize_item(raw: dict[str, Any], item_type: str = "marketplace") -> ScrapedItem:
    """Build a ScrapedItem from one raw actor dataset row."""
    if item_type == "post":
        title = _first(raw.get("text"), raw.get("message"), raw.get("postText"), raw.get("title"))
        if isinstance(title, str):
            title = title.strip().splitlines()[0] if title.strip() else None
    elif item_type == "comment":
        title = _first(raw.get("profileName"), _dig(raw, "author", "name"))
    elif item_type == "page_info":
        title = _first(raw.get("title"), raw.get("pageName"), raw.get("name"))
    else:
        title = _first(
            raw.get("marketplace_listing_title"),
            raw.get("custom_title"),
            raw.get("title"),
            raw.get("name"),
        )
    price, price_amount, currency = _extract_price(raw)
    url = _first(
        raw.get("commentUrl") if item_type == "comment" else None,
        raw.get("pageUrl") if item_type == "page_info" else None,
        raw.get("facebookUrl") if item_type == "page_info" else None,
        raw.get("listingUrl"), raw.get("url"), raw.get("link"), raw.get("href"), raw.get("postUrl"),
    )
    posted_at = _first(raw.get("postedAt"), raw.get("date"), raw.get("time"), raw.get("timestamp"))
    external_id = _first(raw.get("id"), raw.get("postId"), url)

    return ScrapedItem(
        item_type=item_type,
        title=_truncate(str(title) if title else NO_TITLE, ITEM_TITLE_MAX),
        price=_truncate(price, ITEM_PRICE_MAX),
        price_amount=price_amount,
        currency=currency,
        description=_extract_description(raw, item_type),
        location=_truncate(_extract_location(raw), ITEM_LOCATION_MAX),
        url=_truncate(str(url), ITEM_URL_MAX) if url else None,
        posted_at=str(posted_at) if posted_at is not None else None,
        external_id=str(external_id) if external_id is not None else None,
        images=_extract_images(raw),
    )


def normalize_items(raw_items: list[dict[str, Any]], item_type: str = "marketplace") -> list[ScrapedItem]:
    return [normalize_item(raw, item_type) for raw in raw_items if isinstance(raw, dict)]
