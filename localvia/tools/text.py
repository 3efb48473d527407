import re
import unicodedata

_MD_LINK = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_NON_WORD = re.compile(r"[^\w\s]")


def html_to_text(html: str) -> str:
    html = re.sub(r"(?is)<script.*?>.*?</script>", " ", html)
    html = re.sub(r"(?is)<style.*?>.*?</style>", " ", html)
    text = re.sub(r"(?s)<.*?>", " ", html)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def clean_block(content: str, limit: int) -> str:
    """Strip markup and link targets from a scraped block and cap its length."""
    text = html_to_text(_MD_LINK.sub(r"\1", content or ""))
    return text[:limit]


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(value: str | None) -> str:
    """Case, diacritic, punctuation and whitespace insensitive key."""
    if not value:
        return ""
    text = strip_accents(value).casefold()
    text = _NON_WORD.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()
