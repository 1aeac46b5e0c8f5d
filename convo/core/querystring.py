"""
Convo Backend — Query-String Codec
===================================

What:  Parses typed search parameters out of a URL and serializes them back.
How:   A *template* lists the accepted keys and, through its default values,
       the type each one is coerced to:

           0      → int   ("abc" is dropped)
           False  → bool  (only "true" is true)
           ""     → str
           [x]    → comma-separated list of the type of x

       Keys missing from the template are ignored, so clients cannot smuggle
       arbitrary parameters into the services.
Who:   ResourceService (page/size/search parsing and previous/next links).

Example:
    >>> parse("/api/profiles?page=2&categories=rec_a,rec_b&x=1", TEMPLATES["UserProfile"])
    {'page': 2, 'categories': ['rec_a', 'rec_b']}
    >>> to_url({"page": 3, "categories": ["rec_a", "rec_b"]}, "http://host/api/profiles")
    'http://host/api/profiles?page=3&categories=rec_a%2Crec_b'
"""

from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit

from convo.config import settings
from convo.exceptions import QueryStringError

Template = Mapping[str, Any]

TEMPLATES: Dict[str, Template] = {
    "UserProfile": {
        "page": 0,
        "size": 0,
        "search": "",
        "search_precise": "",
        "categories": [""],
        "conversations": [""],
    },
    "Category": {"page": 0, "size": 0},
    "Conversation": {"page": 0, "size": 0, "categories": [""]},
    "Message": {"page": 0, "size": 0},
}


def _coerce(value: str, sample: Any) -> Any:
    # bool first: isinstance(True, int) holds
    if isinstance(sample, bool):
        return value == "true"
    if isinstance(sample, int):
        try:
            return int(value)
        except ValueError:
            return None
    return value


def _coerce_list(value: str, samples: list) -> Optional[list]:
    sample = samples[0] if samples else ""
    items = [_coerce(item, sample) for item in value.split(",") if item != ""]
    items = [item for item in items if item is not None]
    return items or None


def _query_part(source: str) -> str:
    if "://" in source or source.startswith("/"):
        return urlsplit(source).query
    return source.lstrip("?")


def parse(source: Union[str, Mapping[str, str]], template: Template) -> Dict[str, Any]:
    """
    Extracts the template's keys from a URL, a raw query string, or a mapping
    of already-decoded parameters. Values that cannot be coerced are omitted.
    When a key repeats, the last occurrence wins.
    """
    if isinstance(source, str):
        pairs = parse_qsl(_query_part(source), keep_blank_values=True)
    else:
        pairs = list(source.items())

    query: Dict[str, Any] = {}
    for key, value in pairs:
        if key not in template:
            continue
        sample = template[key]
        if isinstance(sample, (list, tuple)):
            coerced = _coerce_list(value, list(sample))
        else:
            coerced = _coerce(value, sample)
        if coerced is None:
            query.pop(key, None)
        else:
            query[key] = coerced
    return query


def _format(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_url(query: Mapping[str, Any], base: Optional[str] = None) -> str:
    """
    Builds `base?key=value...` from a query dict.

    None values, and lists containing None, are skipped; lists are joined
    with commas. With an empty base only the `?query` part is returned.
    """
    if base is None:
        base = settings.server_domain
    try:
        params = []
        for key, value in query.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                if any(item is None for item in value):
                    continue
                params.append((key, ",".join(_format(item) for item in value)))
            else:
                params.append((key, _format(value)))
        encoded = urlencode(params)
    except (TypeError, ValueError) as e:
        raise QueryStringError(
            message="Error at defining the URL from the query string.",
            context={"original_error": str(e)},
        )
    return f"{base}?{encoded}" if base else f"?{encoded}"
