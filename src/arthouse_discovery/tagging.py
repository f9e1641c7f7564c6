"""
Rule-based tagging.

Assigns up to five style tags from a fixed vocabulary by counting keyword
stem matches in a film's synopsis, keywords and genres.
"""

import logging
import re
from typing import Any, Mapping

from .config import MAX_DERIVED_TAGS
from .film import as_str_list

logger = logging.getLogger(__name__)

# Fixed vocabulary; declaration order breaks ties between equal scores
ARTHOUSE_TAGS = (
    'slow',
    'dreamlike',
    'melancholic',
    'intimate',
    'existential',
    'minimalist',
    'bleak',
    'poetic',
    'psychological',
    'fragmented',
    'contemplative',
    'surreal',
    'austere',
    'lyrical',
    'enigmatic',
)

TAG_KEYWORDS = {
    'slow': ('slow', 'meditative', 'paced', 'deliberate', 'contemplation', 'quiet', 'stillness'),
    'dreamlike': ('dream', 'surreal', 'ethereal', 'hypnotic', 'trance', 'fantastical', 'otherworldly'),
    'melancholic': ('melancholy', 'sad', 'grief', 'loss', 'sorrow', 'tragic', 'despair', 'longing'),
    'intimate': ('intimate', 'personal', 'close', 'private', 'confessional', 'relationship', 'character study'),
    'existential': ('existential', 'meaning', 'existence', 'philosophy', 'identity', 'absurd', 'alienation'),
    'minimalist': ('minimal', 'sparse', 'simple', 'austere', 'stripped', 'bare', 'essential'),
    'bleak': ('bleak', 'dark', 'harsh', 'grim', 'desolate', 'hopeless', 'stark'),
    'poetic': ('poetic', 'lyrical', 'visual poetry', 'artistic', 'metaphor', 'symbolic', 'imagery'),
    'psychological': ('psychological', 'mind', 'mental', 'psyche', 'inner', 'subconscious', 'memory'),
    'fragmented': ('fragmented', 'nonlinear', 'disjointed', 'experimental', 'abstract', 'unconventional'),
    'contemplative': ('contemplative', 'reflective', 'thoughtful', 'introspective', 'meditation'),
    'surreal': ('surreal', 'bizarre', 'strange', 'weird', 'uncanny', 'dreamscape'),
    'austere': ('austere', 'severe', 'rigorous', 'restrained', 'disciplined', 'stark'),
    'lyrical': ('lyrical', 'musical', 'rhythmic', 'flowing', 'graceful', 'elegant'),
    'enigmatic': ('enigmatic', 'mysterious', 'ambiguous', 'cryptic', 'puzzling', 'obscure'),
}

# Stems match at a word start, so "dream" also counts "dreams" and "dreamer"
_TAG_PATTERNS = {
    tag: tuple(re.compile(rf"\b{re.escape(stem)}", re.IGNORECASE) for stem in stems)
    for tag, stems in TAG_KEYWORDS.items()
}

# Used only when no stem matched anywhere
GENRE_FALLBACK_TAGS = (
    (('drama',), 'contemplative'),
    (('thriller', 'horror'), 'psychological'),
    (('romance',), 'intimate'),
)
DEFAULT_TAG = 'contemplative'


def _text_fields(source: Any) -> tuple[str, list, list]:
    """Pull synopsis/keywords/genres off a Film or a mapping."""
    if isinstance(source, Mapping):
        synopsis = source.get('synopsis')
        keywords = source.get('keywords')
        genres = source.get('genres')
    else:
        synopsis = getattr(source, 'synopsis', None)
        keywords = getattr(source, 'keywords', None)
        genres = getattr(source, 'genres', None)
    return synopsis or '', as_str_list(keywords), as_str_list(genres)


def score_tags(text: str) -> dict[str, int]:
    """Match count per vocabulary tag, in vocabulary order."""
    return {
        tag: sum(len(pattern.findall(text)) for pattern in _TAG_PATTERNS[tag])
        for tag in ARTHOUSE_TAGS
    }


def generate_tags(source: Any) -> list[str]:
    """
    Derive style tags for a film.

    Args:
        source: Film or mapping with ``synopsis``, ``keywords`` and ``genres``
            (any of which may be missing)

    Returns:
        Between one and five tags from ARTHOUSE_TAGS, strongest first
    """
    synopsis, keywords, genres = _text_fields(source)
    combined = ' '.join([
        str(synopsis),
        ' '.join(str(k) for k in keywords),
        ' '.join(str(g) for g in genres),
    ]).lower()

    scores = score_tags(combined)
    # sorted() is stable, so equal scores keep vocabulary order
    ranked = sorted((tag for tag, score in scores.items() if score > 0), key=lambda t: -scores[t])
    tags = ranked[:MAX_DERIVED_TAGS]

    if not tags:
        genre_text = ' '.join(str(g) for g in genres).lower()
        for needles, tag in GENRE_FALLBACK_TAGS:
            if any(needle in genre_text for needle in needles):
                tags.append(tag)
        if not tags:
            tags.append(DEFAULT_TAG)
        logger.debug(f"No keyword matches; fell back to {tags}")

    return tags[:MAX_DERIVED_TAGS]
