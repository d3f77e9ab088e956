"""
Product attribute extraction and group matching

Turns a unit's free-form spec sheet (or a marketplace listing title) into a
normalized attribute tuple ``(type, tier, processor, screen_size, ram,
storage)``. Units sharing ``(type, tier, processor, screen_size)`` form a
product group; ``score_group_match`` ranks groups against a listing.

Extraction is deterministic: the same input always produces the same tuple,
and missing or sparse details produce empty strings instead of errors.
"""
import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from app.utils.helpers import normalize_key, normalize_text, sanitize_field_name

# ---------------------------------------------------------------------------
# Attribute tuple
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttributeTuple:
    type: str = ""
    tier: str = ""
    processor: str = ""
    screen_size: str = ""
    ram: str = ""
    storage: str = ""

    def group_key(self) -> Tuple[str, str, str, str]:
        return (self.type, self.tier, self.processor, self.screen_size)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Detail field rules
# ---------------------------------------------------------------------------

# Categories whose tier falls back to the "modelo" field when "gama" is empty
TIER_MODEL_FALLBACK_CATEGORIES = ("iphone", "watch", "otro")

KNOWN_SCREEN_SIZES = ("10.2", "10.9", "11", "12.9", "13", "14", "15", "16")

RAM_FIELDS = ("ram", "memoria")
STORAGE_FIELDS = ("almacenamiento", "ssd")

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def _is_processor_field(key: str) -> bool:
    return "procesador" in key or "cpu" in key or "chip" in key or key.startswith("proc")


def _is_screen_field(key: str) -> bool:
    return (
        "tamano" in key
        or "tamanio" in key
        or "pantalla" in key
        or "screen" in key
        or "size" in key
        or key == "tam"
    )


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first_number(value: Any) -> str:
    match = _NUMBER_RE.search(_as_text(value))
    return match.group(0) if match else ""


@dataclass(frozen=True)
class FieldRule:
    """Detail field lookup: first key (insertion order) accepted by ``matches`` wins."""
    name: str
    matches: Callable[[str], bool]
    extract: Callable[[Any], str]

    def scan(self, specs: Mapping[str, Any]) -> Optional[str]:
        """Extracted value of the first matching key, None if no key matched."""
        for key, value in specs.items():
            if self.matches(sanitize_field_name(key)):
                return self.extract(value)
        return None


DETAIL_FIELD_RULES = (
    FieldRule("processor", _is_processor_field, _as_text),
    FieldRule("screen_size", _is_screen_field, _as_text),
)
_RULES_BY_NAME = {rule.name: rule for rule in DETAIL_FIELD_RULES}


def _specs_of(product: Any) -> Dict[str, Any]:
    detail = getattr(product, "detail", None)
    specs = getattr(detail, "specs", None) if detail is not None else None
    return specs if isinstance(specs, Mapping) else {}


def normalize_category(category: Any) -> str:
    cat = _as_text(category).lower()
    return "watch" if "watch" in cat else cat


def _first_field(specs: Mapping[str, Any], names: Iterable[str]) -> str:
    for name in names:
        value = _as_text(specs.get(name))
        if value:
            return value
    return ""


def _screen_from_values(specs: Mapping[str, Any]) -> str:
    """Known size mentioned anywhere in a string field ('MacBook 13 2020')"""
    for value in specs.values():
        if not isinstance(value, str):
            continue
        for size in KNOWN_SCREEN_SIZES:
            if size in value:
                return size
    return ""


def extract_attributes(product: Any) -> AttributeTuple:
    """Attribute tuple of a stored unit (reads ``product.category`` and ``product.detail.specs``)."""
    category = normalize_category(getattr(product, "category", None))
    specs = _specs_of(product)

    tier = _as_text(specs.get("gama"))
    if not tier and category in TIER_MODEL_FALLBACK_CATEGORIES:
        tier = _as_text(specs.get("modelo"))

    processor = _RULES_BY_NAME["processor"].scan(specs) or ""

    screen = _RULES_BY_NAME["screen_size"].scan(specs) or _screen_from_values(specs)

    return AttributeTuple(
        type=category,
        tier=tier,
        processor=processor,
        screen_size=_first_number(screen),
        ram=_first_field(specs, RAM_FIELDS),
        storage=_first_field(specs, STORAGE_FIELDS),
    )


# ---------------------------------------------------------------------------
# Free-text listing titles
# ---------------------------------------------------------------------------

CATEGORY_KEYWORDS = ("macbook", "iphone", "ipad", "watch")

# Priority order, not position in the title
TIER_PATTERNS = (
    (re.compile(r"\bpro max\b"), "Pro Max"),
    (re.compile(r"\bpro\b"), "Pro"),
    (re.compile(r"\bair\b"), "Air"),
    (re.compile(r"\bmini\b"), "Mini"),
    (re.compile(r"\bplus\b"), "Plus"),
    (re.compile(r"\bultra\b"), "Ultra"),
)

PROCESSOR_PATTERNS = (
    re.compile(r"\b(m[1-5])\s*(pro|max|ultra)?\b"),
    re.compile(r"\b(i[3579])\b"),
    re.compile(r"\b(ryzen\s*\d)\b"),
)

SCREEN_RE = re.compile(r"\b(10\.2|10\.9|11|12\.9|13\.3|13\.5|13\.6|13|14|15\.3|15|16)\b")
EXACT_SCREEN_SIZES = ("10.2", "10.9", "11", "12.9")

RAM_RANGE_GB = (8, 36)
STORAGE_RANGE_GB = (64, 1024)
STORAGE_MAX_TB = 1
STORAGE_KEYWORD_WINDOW = 12

RAM_LABEL_PATTERNS = (
    re.compile(r"(\d+)\s*gb[^a-z0-9]{0,6}ram", re.IGNORECASE),
    re.compile(r"ram[^a-z0-9]{0,6}(\d+)\s*gb", re.IGNORECASE),
)
STORAGE_LABEL_RE = re.compile(r"(\d+)\s*(gb|tb)[^a-z0-9]{0,8}(ssd|storage|rom)", re.IGNORECASE)
RAM_STORAGE_PAIR_RE = re.compile(r"(\d+)\s*gb\s*[/\-]\s*(\d+)\s*(gb|tb)", re.IGNORECASE)
CAPACITY_RE = re.compile(r"(\d+)\s*(gb|tb)", re.IGNORECASE)
STORAGE_KEYWORD_RE = re.compile(r"ssd|storage|rom", re.IGNORECASE)


def _band_screen(raw: str) -> str:
    """13.3 -> '13', 15.3 -> '15'; tablet sizes stay exact."""
    if raw in EXACT_SCREEN_SIZES:
        return raw
    size = float(raw)
    for low in (13, 14, 15, 16):
        if low <= size < low + 1:
            return str(low)
    return raw


def _ram_ok(num: int) -> bool:
    return RAM_RANGE_GB[0] <= num <= RAM_RANGE_GB[1]


def _storage_value(num: int, unit: str) -> str:
    unit = unit.upper()
    if unit == "TB":
        return f"{num} TB" if num <= STORAGE_MAX_TB else ""
    if STORAGE_RANGE_GB[0] <= num <= STORAGE_RANGE_GB[1]:
        return f"{num} GB"
    return ""


def parse_free_text_attributes(title: Optional[str]) -> AttributeTuple:
    """Best-effort attribute tuple of a marketplace listing title."""
    raw = title or ""
    text = normalize_text(raw)

    category = next((kw for kw in CATEGORY_KEYWORDS if kw in text), "")

    tier = next((label for pattern, label in TIER_PATTERNS if pattern.search(text)), "")

    processor = ""
    for pattern in PROCESSOR_PATTERNS:
        match = pattern.search(text)
        if match:
            suffix = match.group(2) if match.re.groups > 1 else None
            processor = match.group(1).upper() + (f" {suffix.upper()}" if suffix else "")
            break
    if not processor and "intel" in text:
        processor = "Intel"

    screen = ""
    screen_match = SCREEN_RE.search(text)
    if screen_match:
        screen = _band_screen(screen_match.group(1))

    ram = ""
    for pattern in RAM_LABEL_PATTERNS:
        match = pattern.search(raw)
        if match:
            if _ram_ok(int(match.group(1))):
                ram = f"{int(match.group(1))} GB"
            break

    storage = ""
    match = STORAGE_LABEL_RE.search(raw)
    if match:
        storage = _storage_value(int(match.group(1)), match.group(2))

    pair = RAM_STORAGE_PAIR_RE.search(raw)
    if pair:
        if not ram and _ram_ok(int(pair.group(1))):
            ram = f"{int(pair.group(1))} GB"
        if not storage:
            storage = _storage_value(int(pair.group(2)), pair.group(3))

    capacities = [
        (int(m.group(1)), m.group(2).upper(), m.start())
        for m in CAPACITY_RE.finditer(raw)
    ]
    if capacities:
        if not storage:
            near_keyword = next(
                (c for c in capacities
                 if STORAGE_KEYWORD_RE.search(raw[c[2]:c[2] + STORAGE_KEYWORD_WINDOW])),
                None,
            )
            if near_keyword:
                storage = _storage_value(near_keyword[0], near_keyword[1])
        if not ram:
            ram_candidate = next((c for c in capacities if c[1] == "GB" and _ram_ok(c[0])), None)
            if ram_candidate:
                ram = f"{ram_candidate[0]} GB"
        if not storage:
            qualifying = [c for c in capacities if _storage_value(c[0], c[1])]
            if qualifying:
                largest = sorted(qualifying, key=lambda c: c[0], reverse=True)[0]
                storage = _storage_value(largest[0], largest[1])

    return AttributeTuple(
        type=category,
        tier=tier,
        processor=processor,
        screen_size=screen,
        ram=ram,
        storage=storage,
    )


# ---------------------------------------------------------------------------
# Group matching
# ---------------------------------------------------------------------------

SCORE_CATEGORY = 3
SCORE_TIER = 3
SCORE_PROCESSOR = 2
SCORE_SCREEN = 2
SCORE_RAM = 1
SCORE_STORAGE = 1


def score_group_match(group: Mapping[str, Any], attrs: AttributeTuple) -> int:
    """
    Weighted match score of a product group against listing attributes.

    Different categories on both sides score 0 regardless of anything else.
    This is a greedy heuristic, not a normalized similarity.
    """
    group_type = group.get("type") or ""
    if attrs.type and group_type and normalize_key(group_type) != normalize_key(attrs.type):
        return 0

    score = 0
    if attrs.type:
        score += SCORE_CATEGORY
    if attrs.tier and normalize_key(group.get("tier")) == normalize_key(attrs.tier):
        score += SCORE_TIER
    if attrs.processor and normalize_key(attrs.processor) in normalize_key(group.get("processor")):
        score += SCORE_PROCESSOR
    if attrs.screen_size and str(group.get("screen_size") or "") == str(attrs.screen_size):
        score += SCORE_SCREEN
    if attrs.ram:
        ram_set = {normalize_key(x) for x in group.get("ram_distinct") or []}
        if normalize_key(attrs.ram) in ram_set:
            score += SCORE_RAM
    if attrs.storage:
        storage_set = {normalize_key(x) for x in group.get("storage_distinct") or []}
        if normalize_key(attrs.storage) in storage_set:
            score += SCORE_STORAGE
    return score


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------

DISPLAY_SEPARATOR = " • "


def _format_size(value: str) -> str:
    if not value:
        return ""
    return f'{value}"' if _NUMBER_RE.fullmatch(value) else value


def group_label(attrs: AttributeTuple) -> str:
    """'Macbook Pro 14" M1 Pro'"""
    parts = [
        attrs.type.capitalize() if attrs.type else "Otro",
        attrs.tier,
        _format_size(attrs.screen_size),
        attrs.processor,
    ]
    return " ".join(p for p in parts if p)


def build_display_label(product: Any) -> str:
    """Human-readable one-liner of a unit, e.g. 'Macbook • Air • 13" • M1 • 8 GB • 256 GB'."""
    if product is None:
        return ""
    category = _as_text(getattr(product, "category", None))
    kind = category.lower()
    specs = _specs_of(product)

    if kind == "otro":
        return _as_text(specs.get("descripcionOtro")) or "Otro"

    attrs = extract_attributes(product)
    raw_size = _RULES_BY_NAME["screen_size"].scan(specs) or _screen_from_values(specs)

    parts = []
    if category:
        parts.append(category[:1].upper() + category[1:])
    if kind in ("macbook", "ipad") and specs.get("gama"):
        parts.append(_as_text(specs.get("gama")))
    if attrs.type == "watch" and specs.get("generacion"):
        parts.append(_as_text(specs.get("generacion")))
    parts.append(_format_size(_as_text(raw_size)))
    parts.append(attrs.processor)
    parts.append(attrs.ram)
    parts.append(attrs.storage)
    parts.append(_as_text(specs.get("conexion") or specs.get("conectividad")))
    parts.append(_as_text(specs.get("modelo")))
    return DISPLAY_SEPARATOR.join(p for p in parts if p)
