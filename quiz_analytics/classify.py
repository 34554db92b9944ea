import re
from urllib.parse import urlparse

DIRECT = "direct"

# Order matters: tablet UAs often carry mobile tokens too.
TABLET_RE = re.compile(r"ipad|tablet|playbook|silk")
MOBILE_RE = re.compile(r"mobile|iphone|ipod|android|blackberry|opera mini|iemobile")

SEARCH_ENGINES = ("google", "yahoo", "bing", "duckduckgo", "baidu")

SOCIAL_SITES = {
    "twitter.com": "Twitter/X",
    "t.co": "Twitter/X",
    "x.com": "Twitter/X",
    "instagram.com": "Instagram",
    "l.instagram.com": "Instagram",
    "facebook.com": "Facebook",
    "l.facebook.com": "Facebook",
    "line.me": "LINE",
    "lin.ee": "LINE",
    "tiktok.com": "TikTok",
    "youtube.com": "YouTube",
    "youtu.be": "YouTube",
}

SOURCE_LABELS = {
    "organic_search": "Search",
    "social": "Social",
    "utm_tracked": "Tracking link",
    "referral": "External site",
    "direct": "Direct",
}


def device_class(ua: str | None) -> str:
    """
    Coarse device bucket: tablet, mobile or desktop.
    """
    ua_lower = (ua or "").lower()
    if TABLET_RE.search(ua_lower):
        return "tablet"
    if MOBILE_RE.search(ua_lower):
        return "mobile"
    return "desktop"


def device_platform(ua: str | None) -> str:
    """
    Platform bucket used by the traffic-source view.
    """
    ua_lower = (ua or "").lower()

    if "iphone" in ua_lower or "ipad" in ua_lower or "ipod" in ua_lower:
        return "ios"
    elif "android" in ua_lower:
        return "android"
    elif "macintosh" in ua_lower or "mac os" in ua_lower:
        return "pc_mac"
    elif "windows" in ua_lower:
        return "pc_windows"
    return "other"


def referrer_host(raw_ref: str | None) -> str | None:
    """
    Lower-cased hostname of a Referer without its "www." prefix.
    None when the referrer is empty or can't be parsed.
    """
    if not raw_ref:
        return None
    try:
        host = urlparse(raw_ref).hostname
    except ValueError:
        return None
    if not host:
        return None
    if host.startswith("www."):
        host = host[4:]
    return host


def referrer_domain(raw_ref: str | None) -> str:
    return referrer_host(raw_ref) or DIRECT


def traffic_source(row) -> tuple[str, str | None]:
    """
    Classify a page view into exactly one source bucket.

    Priority: utm_tracked > direct > organic_search > social > referral.
    Returns (bucket, detail) where detail is the campaign/source, the
    search host, the social platform name or the referring host.
    """
    if row.get("utm_source"):
        return "utm_tracked", row.get("utm_campaign") or row["utm_source"]

    host = referrer_host(row.get("referrer"))
    if host is None:
        return DIRECT, None

    if any(engine in host for engine in SEARCH_ENGINES):
        return "organic_search", host

    for social_host, platform in SOCIAL_SITES.items():
        if social_host in host:
            return "social", platform

    return "referral", host
