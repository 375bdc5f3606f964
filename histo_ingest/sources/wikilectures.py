"""
HTML parsing for the WikiLectures histological slide collection.

A category page lists slide (image) pages. Each slide page carries the
full-resolution image link and a short description, and usually links to a
topic article whose sections describe structure, function and location.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .catalog import Link

IMAGE_TITLE_SUFFIX_RE = re.compile(r"\s*\(image\)$", re.IGNORECASE)
NAME_NOISE_RE = re.compile(r"\(image\)|\(histology slide\)", re.IGNORECASE)
GENERIC_SPLIT_RE = re.compile(r",| - ")
IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|svg)$", re.IGNORECASE)

CATEGORY_MAP: list[tuple[str, list[str]]] = [
    ("Endocrine", ["adrenal", "pituitary", "thyroid", "parathyroid", "pineal", "islet", "pancreas"]),
    ("Urinary", ["kidney", "ureter", "bladder", "urethra", "renal"]),
    (
        "Digestive",
        [
            "tongue", "tooth", "lip", "esophagus", "stomach", "intestine", "duodenum",
            "jejunum", "ileum", "colon", "rectum", "anal", "liver", "gallbladder",
            "salivary", "parotid", "submandibular", "sublingual",
        ],
    ),
    (
        "Reproductive",
        [
            "testis", "ovary", "uterus", "vagina", "placenta", "mamm", "prostate",
            "seminal", "epididymis", "oviduct", "cervix", "sperm", "penis",
        ],
    ),
    ("Nervous Tissue", ["nerve", "neuron", "gangli", "spinal cord", "cerebr", "brain", "cerebell", "plexus", "myelin"]),
    ("Cardiovascular", ["artery", "vein", "capillary", "heart", "valve", "aorta", "vessel"]),
    ("Respiratory", ["nasal", "trachea", "bronch", "lung", "larynx", "epiglottis"]),
    ("Lymphatic", ["lymph", "spleen", "thymus", "tonsil"]),
    ("Integumentary", ["skin", "scalp", "hair", "nail", "glandula"]),
    ("Muscle Tissue", ["muscle", "skeletal", "cardiac", "smooth", "myocardial"]),
    ("Connective Tissue", ["connective", "adipose", "cartilage", "bone", "tendon", "ligament", "mesentery", "blood", "marrow"]),
    ("The Cell", ["cell", "mitosis", "organelle", "nucleus", "golgi", "mitochondria"]),
    ("Epithelium", ["epithel", "mesotheli", "endotheli"]),
]


@dataclass
class SlidePage:
    """Data extracted from a slide (image) page.

    Attributes:
        topic_url: Guessed URL of the topic article, or None
        description: First descriptive paragraph, or ""
        image_url: Absolute URL of the full-resolution image, or None
    """
    topic_url: str | None
    description: str
    image_url: str | None


@dataclass
class Theory:
    """Study notes attached to a slide."""
    features: list[str] = field(default_factory=list)
    function: list[str] = field(default_factory=list)
    location: list[str] = field(default_factory=list)
    exam_tips: str = "Refer to WikiLectures for full details."

    def to_dict(self) -> dict:
        return {
            "features": self.features,
            "function": self.function,
            "location": self.location,
            "examTips": self.exam_tips,
        }


def categorize(name: str, description: str = "") -> str:
    """Assign a category by the first keyword group found in name + description."""
    text = f"{name} {description}".lower()
    for category, words in CATEGORY_MAP:
        if any(word in text for word in words):
            return category
    return "Other"


def clean_slide_name(name: str) -> str:
    return NAME_NOISE_RE.sub("", name, count=1).strip()


def image_extension(url: str | None) -> str:
    if not url:
        return "jpg"
    match = IMAGE_EXT_RE.search(url.split("?", 1)[0])
    return match.group(1).lower() if match else "jpg"


def parse_category_page(html: str, page_url: str) -> list[Link]:
    """List slide pages in the category's page block (#mw-pages)."""
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for anchor in soup.select("#mw-pages a[href]"):
        name = anchor.get_text(strip=True)
        if not name or name.startswith("Category:"):
            continue
        links.append(Link(text=name, url=urljoin(page_url, anchor["href"])))
    return links


def parse_slide_page(html: str, page_url: str, base_url: str) -> SlidePage:
    """Extract the topic link guess, description and full image link from a slide page."""
    soup = BeautifulSoup(html, "html.parser")
    content = soup.select_one("#mw-content-text") or soup

    heading = soup.find("h1")
    title = heading.get_text(strip=True) if heading else ""
    clean_title = IMAGE_TITLE_SUFFIX_RE.sub("", title).replace("File:", "").strip()

    topic_url = None
    for anchor in content.select("a[href]"):
        href = urljoin(page_url, anchor["href"])
        if anchor.get_text(strip=True) == clean_title and "File:" not in href:
            topic_url = href
            break

    if topic_url is None:
        generic = GENERIC_SPLIT_RE.split(clean_title)[0].strip()
        guess = re.sub(r"\s+", "_", generic)
        if len(guess) > 3:
            topic_url = f"{base_url.rstrip('/')}/w/{guess}"

    description = ""
    for paragraph in content.find_all("p"):
        text = paragraph.get_text(strip=True)
        if len(text) > 20:
            description = text
            break

    image_url = None
    image_link = soup.select_one('.fullImageLink a, a.internal[href*="/sites/"], a[href*="/images/"]')
    if image_link and image_link.get("href"):
        image_url = urljoin(base_url.rstrip("/") + "/", image_link["href"])

    return SlidePage(topic_url=topic_url, description=description, image_url=image_url)


def is_missing_article(html: str) -> bool:
    soup = BeautifulSoup(html, "html.parser")
    if soup.select_one(".noarticletext"):
        return True
    return bool(soup.title and "Search results" in soup.title.get_text())


def parse_topic_page(html: str) -> Theory:
    """Collect intro and section text from a topic article.

    Sections are classified by their h2/h3 heading: function/physiology,
    location/occurrence/anatomy, description/structure.
    """
    soup = BeautifulSoup(html, "html.parser")
    content = soup.select_one("#mw-content-text") or soup
    features: list[str] = []
    function: list[str] = []
    location: list[str] = []

    intro = content.find("p")
    if intro:
        intro_text = intro.get_text(strip=True)
        if len(intro_text) > 20:
            features.append(intro_text)

    for header in content.find_all(["h2", "h3"]):
        heading = header.get_text(strip=True).lower()
        parts = []
        for sibling in header.find_next_siblings():
            if not isinstance(sibling, Tag):
                continue
            if sibling.name in ("h2", "h3"):
                break
            if sibling.name in ("p", "ul"):
                text = sibling.get_text(" ", strip=True)
                if len(text) > 10:
                    parts.append(text)
        section = "\n\n".join(parts)
        if not section:
            continue
        if "function" in heading or "physiology" in heading:
            function.append(section)
        elif "location" in heading or "occurrence" in heading or "anatom" in heading:
            location.append(section)
        elif "description" in heading or "structure" in heading:
            features.append(section)

    return Theory(features=features, function=function, location=location)
