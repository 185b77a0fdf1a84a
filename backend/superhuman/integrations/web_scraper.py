"""
Company website scraper.

This module handles:
1. Turning user input ("https://Acme.com/about", "acme.com") into a bare domain
2. Fetching https://<domain> the way a search crawler would
3. Pulling the title, meta/og descriptions and main text out of the page

Only public hostnames are accepted; IP literals, ports and single-label
names like "localhost" are rejected before any request is made.
"""
import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from superhuman.config import get_settings
from superhuman.models.ai import WebsiteContent
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import InvalidRequestError, ScrapeError

logger = get_logger(__name__)
settings = get_settings()

USER_AGENT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"

# Main text handed to the model is cut here
MAIN_CONTENT_LIMIT = 2000

MAIN_CONTENT_SELECTOR = "main, article, #main, #content"

DOMAIN_PATTERN = re.compile(
    r"^(?=.{1,253}$)([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)


def normalize_domain(value: str) -> str:
    """
    Reduce a URL or domain to a lower-cased hostname.

    Raises:
        InvalidRequestError: Nothing that looks like a public domain name
    """
    domain = value.strip().lower()
    domain = re.sub(r"^[a-z][a-z0-9+.-]*://", "", domain)
    domain = re.split(r"[/?#]", domain, maxsplit=1)[0]
    domain = domain.rsplit("@", 1)[-1]

    if not DOMAIN_PATTERN.match(domain):
        raise InvalidRequestError(f"'{value}' is not a domain name")
    return domain


def _meta_content(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return (tag.get("content") or "").strip()


def parse_website(html: str) -> WebsiteContent:
    """Extract the descriptive parts of an HTML page."""
    soup = BeautifulSoup(html, "html.parser")

    title = soup.title.get_text(strip=True) if soup.title else ""

    main = soup.select_one(MAIN_CONTENT_SELECTOR) or soup.body
    main_content = ""
    if main is not None:
        for tag in main(["script", "style", "noscript"]):
            tag.decompose()
        main_content = " ".join(main.get_text(separator=" ").split())

    return WebsiteContent(
        title=title,
        meta_description=_meta_content(soup, name="description"),
        og_description=_meta_content(soup, property="og:description"),
        main_content=main_content[:MAIN_CONTENT_LIMIT],
    )


async def fetch_website(
    domain: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> WebsiteContent:
    """
    Fetch and parse a company's home page.

    Args:
        domain: Bare hostname (see normalize_domain)
        transport: Optional httpx transport (tests plug a MockTransport here)

    Raises:
        ScrapeError: Site unreachable or answered with an error status
    """
    url = f"https://{domain}"

    async with httpx.AsyncClient(
        transport=transport,
        timeout=settings.scraper_timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    ) as client:
        try:
            response = await client.get(url)
        except httpx.RequestError as e:
            logger.warning(f"Website fetch failed for {domain}: {e}")
            raise ScrapeError(f"Failed to fetch {url}")

    if not response.is_success:
        logger.warning(f"Website fetch for {domain} returned {response.status_code}")
        raise ScrapeError(f"Failed to fetch {url}")

    logger.info(f"Fetched website for {domain}")
    return parse_website(response.text)
