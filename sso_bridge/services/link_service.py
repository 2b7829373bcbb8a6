"""Deep links into the forum for "join the discussion" UI elements.

With SSO enabled the link goes through the forum's ``/session/sso`` route; the
forum then mints the signed ``sso``/``sig`` pair and sends the browser to our
SSO endpoint, so the user lands on the target already logged in.
"""
from dataclasses import dataclass
from urllib.parse import quote, urlencode


@dataclass(frozen=True)
class ForumCategory:
    id: str
    name: str
    slug: str
    description: str


DEFAULT_CATEGORIES: tuple[ForumCategory, ...] = (
    ForumCategory("general", "General Discussion", "general", "General community discussions and topics"),
    ForumCategory("support", "Support", "support", "Get help and technical support"),
    ForumCategory("feedback", "Feedback", "feedback", "Share your feedback and suggestions"),
    ForumCategory("announcements", "Announcements", "announcements", "Official announcements and updates"),
    ForumCategory("community", "Community", "community", "Community events and discussions"),
)


def _forum_url(base_url: str, path: str, enable_sso: bool) -> str:
    base = base_url.rstrip("/")
    if enable_sso:
        return f"{base}/session/sso?{urlencode({'return_path': path})}"
    return f"{base}{path}"


def build_category_url(base_url: str, category_slug: str, enable_sso: bool = True) -> str:
    if not category_slug:
        raise ValueError("category_slug is required")
    return _forum_url(base_url, f"/c/{quote(category_slug, safe='')}", enable_sso)


def build_topic_url(base_url: str, topic_id: str | int, enable_sso: bool = True) -> str:
    topic = str(topic_id)
    if not topic:
        raise ValueError("topic_id is required")
    return _forum_url(base_url, f"/t/{quote(topic, safe='')}", enable_sso)
