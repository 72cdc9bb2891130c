"""
Stopword sets used by the map task.
"""

from typing import FrozenSet

# French function words; hyphenated entries can never match a letter-only token
# but are kept so the set stays the one the workers were deployed with.
DEFAULT_STOPWORDS: FrozenSet[str] = frozenset([
    "le", "ou", "aux", "de", "des", "la", "les", "je", "l", "nous", "tu",
    "il", "ils", "elle", "elles", "lui", "vous", "leur", "eux", "celui",
    "celle", "ceux-là", "celui-ci", "celui-là", "celle-ci", "celle-là",
    "ceci", "cela", "ça", "celles-ci", "celles-là", "mien", "nôtre", "tien",
    "sien", "vôtre", "mienne", "tienne", "sienne", "miens", "tiens", "siens",
    "nôtres", "vôtres", "leurs", "miennes", "tiennes", "siennes", "on",
    "personne", "rien", "aucun", "aucune", "nul", "nulle", "un", "une",
    "autre", "pas", "tout", "quelqu", "quelque", "certains", "certaine",
    "certain", "certaines", "plusieurs", "tous", "qui", "que", "quoi",
    "dont", "où", "lequel", "laquelle", "duquel", "auquel", "lesquels",
    "desquels", "lesquelles", "desquelles", "auxquelles", "à", "et", "ne",
    "du", "en", "au", "pour", "par", "se", "dans", "est", "ni", "qu", "être",
    "ses", "si", "sont", "sa", "ii", "iii", "ier", "ce", "lorsqu", "lorsque",
])


def load_stopwords(path: str) -> FrozenSet[str]:
    """Load a stopword set from a file with one word per line"""
    with open(path, 'r', encoding='utf-8') as f:
        return frozenset(line.strip().lower() for line in f if line.strip())
