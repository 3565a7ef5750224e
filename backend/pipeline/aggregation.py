from typing import Iterable, Optional

from helpers.errors import EmptyCorpus

# Blank line between sources so the analyzer sees where one input ends.
SOURCE_SEPARATOR = "\n\n"


def aggregate_texts(
    text_input: Optional[str],
    image_texts: Iterable[Optional[str]],
    audio_texts: Iterable[Optional[str]],
) -> str:
    """Join direct text, image texts and audio texts (in that order) into one corpus."""
    parts = [text_input, *image_texts, *audio_texts]
    parts = [part.strip() for part in parts if part and part.strip()]
    if not parts:
        raise EmptyCorpus()
    return SOURCE_SEPARATOR.join(parts)
